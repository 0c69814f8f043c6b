import os
import sys

# Add project root to Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../..")))

from src.comecome_app.models.database import create_tables, get_session  # noqa: E402
from src.comecome_app.services.auth_service import AuthService  # noqa: E402
from src.comecome_app.services.errors import AuthError  # noqa: E402


def reset_pin(user_id: int, new_pin: str) -> bool:
    """Overwrite a user's PIN from the command line (no current PIN needed)."""
    create_tables()
    with get_session() as session:
        try:
            AuthService(session).set_pin(user_id, new_pin, actor_id=None)
        except AuthError as e:
            print(f"PIN reset failed: {e.message}")
            return False
    print(f"PIN for user {user_id} updated successfully.")
    return True


if __name__ == "__main__":
    if len(sys.argv) != 3 or not sys.argv[1].isdigit():
        print("Usage: python -m src.scripts.reset_pin <user_id> <new_pin>")
        sys.exit(1)
    sys.exit(0 if reset_pin(int(sys.argv[1]), sys.argv[2]) else 1)
