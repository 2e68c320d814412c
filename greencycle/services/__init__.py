"""
Core engine services.

valuation     device pricing, impact ledger, submission
lifecycle     device status state machine
inventory     device reads and removal
proximity     organization matching
organizations organization profile and verification
scheduler     capacity-constrained pickups
gamification  points, levels, badges, challenges, leaderboard
"""
