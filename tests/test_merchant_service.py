"""Tests for MerchantService."""

import pytest

from app.core.errors import MerchantNotFoundError, TenantInactiveError, TenantResolutionError
from app.core.security import verify_password
from app.models.merchant import Merchant, MerchantCreate, MerchantUpdate
from app.models.queue import QueueCreate
from app.services.merchant_service import MerchantService
from app.services.queue_service import QueueService

PASSWORD = "correct-horse-battery"


@pytest.fixture
def service(session, security_log):
    return MerchantService(session, security_log)


@pytest.mark.asyncio
async def test_create_binds_to_tenant_and_hashes_password(service, make_tenant):
    acme = await make_tenant("acme")
    globex = await make_tenant("globex")

    merchant = await service.create(
        MerchantCreate(
            email="Owner@BurgerBar.com",
            business_name="Burger Bar",
            password="s3cret-pass",
            tenant_id=globex.id,
        ),
        acme.id,
    )

    assert merchant.tenant_id == acme.id
    assert merchant.email == "owner@burgerbar.com"
    assert merchant.password_hash != "s3cret-pass"
    assert verify_password("s3cret-pass", merchant.password_hash)


@pytest.mark.asyncio
async def test_lookups_are_tenant_scoped(service, make_tenant, make_merchant):
    acme = await make_tenant("acme")
    globex = await make_tenant("globex")
    merchant = await make_merchant("shop@globex.test", globex.id)

    assert await service.find_by_id(merchant.id, acme.id) is None
    assert await service.find_by_email("shop@globex.test", acme.id) is None
    assert (await service.find_by_email("SHOP@globex.test", globex.id)).id == merchant.id

    with pytest.raises(MerchantNotFoundError, match="Merchant not found or access denied"):
        await service.get(merchant.id, acme.id)


@pytest.mark.asyncio
async def test_list_merchants(service, make_tenant, make_merchant):
    acme = await make_tenant("acme")
    globex = await make_tenant("globex")
    await make_merchant("a@acme.test", acme.id)
    await make_merchant("b@acme.test", acme.id)
    await make_merchant("c@globex.test", globex.id)

    merchants = await service.list_merchants(acme.id)

    assert sorted(m.email for m in merchants) == ["a@acme.test", "b@acme.test"]
    assert len(await service.list_merchants(acme.id, limit=1)) == 1


@pytest.mark.asyncio
async def test_update_rehashes_password(service, make_tenant, make_merchant):
    tenant = await make_tenant("acme")
    merchant = await make_merchant("shop@acme.test", tenant.id)

    updated = await service.update(
        merchant.id,
        MerchantUpdate(business_name="New Name", password="another-pass"),
        tenant.id,
    )

    assert updated.business_name == "New Name"
    assert verify_password("another-pass", updated.password_hash)


@pytest.mark.asyncio
async def test_update_foreign_merchant_is_not_found(service, make_tenant, make_merchant):
    acme = await make_tenant("acme")
    globex = await make_tenant("globex")
    merchant = await make_merchant("shop@globex.test", globex.id)

    with pytest.raises(MerchantNotFoundError):
        await service.update(merchant.id, {"business_name": "Hijacked"}, acme.id)


@pytest.mark.asyncio
async def test_delete_cascades_queues(service, session, security_log, make_tenant, make_merchant):
    tenant = await make_tenant("acme")
    merchant = await make_merchant("shop@acme.test", tenant.id, max_queues=2)
    queues = QueueService(session, security_log)
    await queues.create(merchant.id, QueueCreate(name="Lunch"), tenant.id)

    await service.delete(merchant.id, tenant.id)

    assert await session.get(Merchant, merchant.id) is None
    assert await queues.find_by_merchant(merchant.id, tenant.id) == []


@pytest.mark.asyncio
async def test_authenticate(service, make_tenant, make_merchant):
    tenant = await make_tenant("acme")
    merchant = await make_merchant("shop@acme.test", tenant.id)

    assert await service.authenticate("shop@acme.test", "wrong-password") is None

    authed = await service.authenticate("shop@acme.test", PASSWORD)
    assert authed.id == merchant.id
    assert authed.last_login is not None


@pytest.mark.asyncio
async def test_authenticate_rejects_inactive_merchant(service, make_tenant, make_merchant):
    tenant = await make_tenant("acme")
    await make_merchant("closed@acme.test", tenant.id, is_active=False)

    assert await service.authenticate("closed@acme.test", PASSWORD) is None


@pytest.mark.asyncio
async def test_transfer_is_explicit_and_logged(service, make_tenant, make_merchant, security_events):
    acme = await make_tenant("acme")
    globex = await make_tenant("globex")
    merchant = await make_merchant("shop@acme.test", acme.id)

    moved = await service.transfer(merchant.id, globex.id)

    assert moved.tenant_id == globex.id
    assert security_events("WARNING") == ["MERCHANT_TENANT_TRANSFERRED"]


@pytest.mark.asyncio
async def test_transfer_to_unusable_tenant(service, make_tenant, make_merchant):
    acme = await make_tenant("acme")
    closed = await make_tenant("closed", is_active=False)
    merchant = await make_merchant("shop@acme.test", acme.id)

    with pytest.raises(TenantInactiveError):
        await service.transfer(merchant.id, closed.id)
    with pytest.raises(TenantResolutionError):
        await service.transfer(merchant.id, "no-such-tenant")
    with pytest.raises(MerchantNotFoundError):
        await service.transfer("no-such-merchant", acme.id)


@pytest.mark.asyncio
async def test_can_create_queue(service, make_tenant, make_merchant, make_queue):
    tenant = await make_tenant("acme")
    merchant = await make_merchant("shop@acme.test", tenant.id, max_queues=1)

    assert await service.can_create_queue(merchant.id, tenant.id) is True
    await make_queue(merchant.id)
    assert await service.can_create_queue(merchant.id, tenant.id) is False
    assert await service.can_create_queue("no-such-merchant", tenant.id) is False


@pytest.mark.asyncio
async def test_email_taken_is_global(service, make_tenant, make_merchant):
    globex = await make_tenant("globex")
    await make_merchant("shop@globex.test", globex.id)

    assert await service.email_taken("SHOP@globex.test") is True
    assert await service.email_taken("free@acme.test") is False
