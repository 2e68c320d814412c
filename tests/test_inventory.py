"""
Device read and removal tests
"""
import pytest

from greencycle import db
from greencycle.errors import ConflictError, NotFoundOrUnauthorized, ValidationError
from greencycle.models import Device, PickupDevice
from greencycle.services import inventory, scheduler


def book(user, organization, device, pickup_date):
    return scheduler.schedule_pickup(
        user, [device.id], organization.id, pickup_date.isoformat(), '12 Green Street')


class TestDeviceReads:
    """Test who sees which devices"""

    def test_user_lists_own_devices(self, app, test_user, user_factory, device_factory):
        device_factory()
        device_factory(status='recycled')
        device_factory(owner=user_factory())

        result = inventory.list_user_devices(test_user)
        assert result['pagination']['total'] == 2

        recycled = inventory.list_user_devices(test_user, status='recycled')
        assert [d['status'] for d in recycled['devices']] == ['recycled']

    def test_unknown_status_rejected(self, app, test_user):
        with pytest.raises(ValidationError):
            inventory.list_user_devices(test_user, status='lost')

    def test_organization_lists_assigned_devices(self, app, ngo_account, test_ngo, device_factory):
        assigned = device_factory(ngo_id=test_ngo.id, status='received')
        device_factory()

        devices = inventory.list_ngo_devices(ngo_account)['devices']

        assert [d['id'] for d in devices] == [assigned.id]
        assert devices[0]['user_name'] == 'Asha Recycler'
        assert devices[0]['ngo_name'] == test_ngo.name

    def test_owner_reads_device(self, app, test_user, device_factory):
        device = device_factory()
        assert inventory.get_device(test_user, device.id)['id'] == device.id

    def test_other_user_cannot_read_device(self, app, user_factory, device_factory):
        device = device_factory()
        with pytest.raises(NotFoundOrUnauthorized):
            inventory.get_device(user_factory(), device.id)

    def test_organization_sees_assigned_and_unassigned(
            self, app, ngo_account, test_ngo, organization_factory, device_factory):
        mine = device_factory(ngo_id=test_ngo.id, status='received')
        unassigned = device_factory()
        elsewhere = device_factory(ngo_id=organization_factory().id, status='received')

        assert inventory.get_device(ngo_account, mine.id)['id'] == mine.id
        assert inventory.get_device(ngo_account, unassigned.id)['ngo_name'] is None
        with pytest.raises(NotFoundOrUnauthorized):
            inventory.get_device(ngo_account, elsewhere.id)


class TestDeleteDevice:
    """Test removal and the open-pickup guard"""

    def test_owner_deletes_device(self, app, test_user, device_factory):
        device = device_factory()
        device_id = device.id

        inventory.delete_device(test_user, device_id)

        assert db.session.get(Device, device_id) is None

    def test_other_user_cannot_delete(self, app, user_factory, device_factory):
        device = device_factory()
        with pytest.raises(NotFoundOrUnauthorized):
            inventory.delete_device(user_factory(), device.id)
        assert db.session.get(Device, device.id) is not None

    def test_device_in_open_pickup_is_kept(self, app, test_user, test_ngo, device_factory, future_date):
        device = device_factory()
        book(test_user, test_ngo, device, future_date)

        with pytest.raises(ConflictError):
            inventory.delete_device(test_user, device.id)

        db.session.expire_all()
        assert db.session.get(Device, device.id).status == 'pickup_scheduled'

    def test_admin_blocked_by_open_pickup_too(
            self, app, test_admin, test_user, test_ngo, device_factory, future_date):
        device = device_factory()
        book(test_user, test_ngo, device, future_date)

        with pytest.raises(ConflictError):
            inventory.delete_device(test_admin, device.id)

    def test_cancelled_pickup_releases_device(self, app, test_user, test_ngo, device_factory, future_date):
        device = device_factory()
        device_id = device.id
        pickup = book(test_user, test_ngo, device, future_date)
        scheduler.cancel_pickup(test_user, pickup['pickup_id'])

        inventory.delete_device(test_user, device_id)

        assert db.session.get(Device, device_id) is None
        assert PickupDevice.query.filter_by(device_id=device_id).count() == 0

    def test_admin_deletes_any_device(self, app, test_admin, device_factory):
        device = device_factory()
        device_id = device.id

        inventory.delete_device(test_admin, device_id)

        assert db.session.get(Device, device_id) is None
