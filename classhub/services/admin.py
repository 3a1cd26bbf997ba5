# classhub/services/admin.py
import logging
import os

from azure.core.exceptions import AzureError

from classhub.infra.table_client import get_table_client
from classhub.models.chat import AdminContact

LOGGER = logging.getLogger(__name__)

STUDENTS_TABLE_NAME = os.getenv("STUDENTS_TABLE_NAME", "students")
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@classhub.local")


def _fallback() -> AdminContact:
    return AdminContact(name="Admin", email=ADMIN_EMAIL, whatsapp="Not available")


async def get_admin_details(table_client=None) -> AdminContact:
    """
    Contact details of the site administrator, read from their student
    profile. Falls back to the configured address if the lookup fails.
    """
    try:
        client = table_client or get_table_client(STUDENTS_TABLE_NAME)
        async with client:
            entities = client.query_entities(
                query_filter="email eq @email",
                parameters={"email": ADMIN_EMAIL},
            )
            async for student in entities:
                return AdminContact(
                    name=student.get("name") or "Admin",
                    email=student.get("email") or ADMIN_EMAIL,
                    whatsapp=student.get("whatsapp") or "Not available",
                )
    except (AzureError, RuntimeError) as exc:
        LOGGER.error("Error fetching admin details: %s", exc)
        return _fallback()

    return _fallback()
