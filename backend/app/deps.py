from fastapi import Header, HTTPException
from .db import get_conn
from .security import verify_device_token
import uuid


def require_device(
    device_id: uuid.UUID = Header(..., alias="X-Device-Id"),
    device_token: str = Header(..., alias="X-Device-Token"),
):
    # Devices don't know their company_id a priori. Look the device up by id and
    # return its company_id so sync handlers can scope every read and write.
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT company_id, device_token_hash
                FROM sync_devices
                WHERE id = %s AND is_active = true
                """,
                (device_id,),
            )
            row = cur.fetchone()
            if not row or not verify_device_token(device_token, row["device_token_hash"]):
                raise HTTPException(status_code=401, detail="invalid device token")
            return {"device_id": device_id, "company_id": str(row["company_id"])}
