import os
import sys

# Add project root to Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../..")))

from src.config import AuthSettings  # noqa: E402
from src.comecome_app.models.database import Guardian, User, create_tables, get_session  # noqa: E402
from src.comecome_app.services.pin_hashing import hash_pin, is_valid_pin  # noqa: E402


def create_guardian(name: str, pin: str, locale: str = None) -> int:
    """
    Create a guardian account with its credential row.

    Returns:
        The new user id, or 0 if the PIN is invalid
    """
    if not is_valid_pin(pin):
        print("PIN must be exactly 4 digits.")
        return 0

    settings = AuthSettings.from_config()
    create_tables()
    with get_session() as session:
        user = User(
            role="guardian",
            pin_hash=hash_pin(pin, settings.pin_hash_cost),
            locale=locale or settings.default_locale,
        )
        session.add(user)
        session.flush()
        session.add(Guardian(user_id=user.id, name=name))
        user_id = user.id
    print(f"Guardian '{name}' created with user id {user_id}.")
    return user_id


if __name__ == "__main__":
    if len(sys.argv) not in (3, 4):
        print("Usage: python -m src.scripts.create_guardian <name> <pin> [locale]")
        sys.exit(1)
    locale_arg = sys.argv[3] if len(sys.argv) == 4 else None
    sys.exit(0 if create_guardian(sys.argv[1], sys.argv[2], locale_arg) else 1)
