import logging
import secrets
from branchqueue.core.config import settings
from branchqueue.modules.appointments.repository import AppointmentRepository

logger = logging.getLogger(__name__)

# no 0/O, 1/I/L: codes are read aloud and printed on kiosk tickets
ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"


class CodeSpaceExhausted(RuntimeError):
    pass


def random_code(length: int) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def turn_code(ticket_number: int) -> str:
    return f"{random_code(5)}-{ticket_number:03d}"


async def issue_code(repo: AppointmentRepository, ticket_number: int | None = None) -> str:
    """Draw a code not used by any appointment yet; retried on collision."""
    for attempt in range(1, settings.CONFIRMATION_CODE_MAX_ATTEMPTS + 1):
        code = turn_code(ticket_number) if ticket_number is not None else random_code(settings.CONFIRMATION_CODE_LENGTH)
        if not await repo.code_exists(code):
            return code
        logger.warning(f"Confirmation code collision on attempt {attempt}")
    raise CodeSpaceExhausted("Could not issue a unique confirmation code")
