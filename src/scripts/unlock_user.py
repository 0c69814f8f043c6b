import os
import sys

# Add project root to Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../..")))

from src.comecome_app.models.database import create_tables, get_session  # noqa: E402
from src.comecome_app.services.auth_service import AuthService  # noqa: E402
from src.comecome_app.services.errors import NotFoundError  # noqa: E402


def unlock_user(user_id: int) -> bool:
    """Clear the PIN lockout and failed-attempt history for a user."""
    create_tables()
    with get_session() as session:
        try:
            AuthService(session).unlock_user(user_id, actor_id=None, reason="operator")
        except NotFoundError:
            print(f"User {user_id} not found.")
            return False
    print(f"User {user_id} unlocked.")
    return True


if __name__ == "__main__":
    if len(sys.argv) != 2 or not sys.argv[1].isdigit():
        print("Usage: python -m src.scripts.unlock_user <user_id>")
        sys.exit(1)
    sys.exit(0 if unlock_user(int(sys.argv[1])) else 1)
