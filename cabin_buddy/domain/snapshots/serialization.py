"""Row <-> JSON conversion for snapshot documents"""

from datetime import date, datetime

from sqlalchemy import Date, DateTime

# Collections in a snapshot document, in insert order
COLLECTION_KEYS = ("reservations", "payments", "paymentSplits", "checkinSessions", "receipts")

# Files written before the camelCase layout used snake_case keys
LEGACY_KEYS = {
    "paymentSplits": "payment_splits",
    "checkinSessions": "checkin_sessions",
    "organizationId": "organization_id",
    "organizationName": "organization_name",
    "seasonYear": "season_year",
    "snapshotDate": "snapshot_date",
    "snapshotType": "snapshot_type",
    "snapshotSource": "snapshot_source",
    "createdByUserId": "created_by_user_id",
    "totalReservations": "total_reservations",
    "totalPayments": "total_payments",
    "totalPaymentSplits": "total_payment_splits",
    "totalCheckinSessions": "total_checkin_sessions",
    "totalReceipts": "total_receipts",
    "totalAmountBilled": "total_amount_billed",
    "totalAmountPaid": "total_amount_paid",
}


def row_to_dict(obj) -> dict:
    data = {}
    for column in obj.__table__.columns:
        value = getattr(obj, column.key)
        if isinstance(value, (date, datetime)):
            value = value.isoformat()
        data[column.key] = value
    return data


def dict_to_row(model, data: dict, organization_id: str):
    """Build a model instance from a snapshot row, pinned to ``organization_id``"""
    values = {}
    for column in model.__table__.columns:
        if column.key not in data:
            continue
        value = data[column.key]
        if isinstance(value, str) and isinstance(column.type, DateTime):
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        elif isinstance(value, str) and isinstance(column.type, Date):
            value = date.fromisoformat(value[:10])
        values[column.key] = value
    values["organization_id"] = organization_id
    return model(**values)


def _read_section(section: dict, keys) -> dict:
    section = section or {}
    return {key: section.get(key, section.get(LEGACY_KEYS.get(key, key))) for key in keys}


def normalize_document(document: dict) -> dict:
    """Return a snapshot document in the camelCase layout, accepting legacy snake_case files"""
    metadata_keys = (
        "organizationId",
        "organizationName",
        "seasonYear",
        "snapshotDate",
        "snapshotType",
        "snapshotSource",
        "createdByUserId",
    )
    summary_keys = (
        "totalReservations",
        "totalPayments",
        "totalPaymentSplits",
        "totalCheckinSessions",
        "totalReceipts",
        "totalAmountBilled",
        "totalAmountPaid",
    )
    data = _read_section(document.get("data"), COLLECTION_KEYS)
    return {
        "metadata": _read_section(document.get("metadata"), metadata_keys),
        "data": {key: list(rows or []) for key, rows in data.items()},
        "summary": _read_section(document.get("summary"), summary_keys),
    }
