from fastapi import APIRouter, Depends, HTTPException, status

from waghl.api.v1.schemas.customer import SubaccountCreateIn, SubaccountOut
from waghl.core.logging import get_logger
from waghl.core.supabase_rest import CustomerStore, get_customer_store
from waghl.entitlements.errors import SubaccountConflict
from waghl.entitlements.guard import (
    enforce_subaccount_quota,
    get_entitlement_snapshot,
    require_active_subscription,
)
from waghl.entitlements.snapshot import EntitlementSnapshot

router = APIRouter(prefix="/customer/subaccounts")
logger = get_logger("api.subaccounts")
customer_store_dependency = Depends(get_customer_store)
snapshot_dependency = Depends(get_entitlement_snapshot)
active_subscription_dependency = Depends(require_active_subscription)


@router.get("")
async def list_subaccounts(
    snapshot: EntitlementSnapshot = active_subscription_dependency,
    store: CustomerStore = customer_store_dependency,
) -> dict[str, object]:
    rows = await store.list_subaccounts(snapshot.customer_id)
    return {
        "success": True,
        "subaccounts": [SubaccountOut.model_validate(row).model_dump(mode="json") for row in rows],
        "current": snapshot.total_subaccounts,
        "max": snapshot.max_subaccounts,
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def link_subaccount(
    payload: SubaccountCreateIn,
    snapshot: EntitlementSnapshot = active_subscription_dependency,
    store: CustomerStore = customer_store_dependency,
) -> dict[str, object]:
    enforce_subaccount_quota(snapshot)

    location_id = payload.location_id.strip()
    if await store.select_subaccount(snapshot.customer_id, location_id) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Subaccount is already linked.")

    row = await store.insert_subaccount(
        {
            "customer_id": snapshot.customer_id,
            "location_id": location_id,
            "company_id": payload.company_id,
            "location_name": payload.location_name,
            "status": "active",
        }
    )

    # The quota was checked against the snapshot; the counter only moves if
    # nobody else changed it since. A link is never kept without being counted.
    try:
        counted = await store.set_total_subaccounts(
            snapshot.customer_id,
            expected=snapshot.total_subaccounts,
            new_total=snapshot.total_subaccounts + 1,
        )
    except HTTPException:
        await store.delete_subaccount(str(row.get("id")))
        logger.warning(
            "subaccounts.link_rolled_back",
            extra={"component": "subaccounts", "customer_id": snapshot.customer_id, "location_id": location_id},
        )
        raise
    if not counted:
        await store.delete_subaccount(str(row.get("id")))
        logger.warning(
            "subaccounts.link_conflict",
            extra={"component": "subaccounts", "customer_id": snapshot.customer_id},
        )
        raise SubaccountConflict()

    logger.info(
        "subaccounts.linked",
        extra={"component": "subaccounts", "customer_id": snapshot.customer_id, "location_id": location_id},
    )
    return {
        "success": True,
        "subaccount": SubaccountOut.model_validate(row).model_dump(mode="json"),
        "current": snapshot.total_subaccounts + 1,
        "max": snapshot.max_subaccounts,
    }


@router.delete("/{location_id}")
async def unlink_subaccount(
    location_id: str,
    snapshot: EntitlementSnapshot = snapshot_dependency,
    store: CustomerStore = customer_store_dependency,
) -> dict[str, object]:
    row = await store.select_subaccount(snapshot.customer_id, location_id)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subaccount not found")

    await store.delete_subaccount(str(row.get("id")))
    await store.decrement_total_subaccounts(snapshot.customer_id)
    logger.info(
        "subaccounts.unlinked",
        extra={"component": "subaccounts", "customer_id": snapshot.customer_id, "location_id": location_id},
    )
    return {"success": True, "message": "Subaccount removed"}
