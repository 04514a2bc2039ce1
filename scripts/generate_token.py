import os
import sys

# Add the parent directory to the Python path to allow imports from parent
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from auth import create_access_token  # noqa: E402
from config import AUTH_SECRET  # noqa: E402
from models import ROLES  # noqa: E402


def generate_token(email: str, role: str, user_id: str) -> str:
    """
    Generate an access token for local testing (expires in 1 day)
    """
    return create_access_token(user_id=user_id, email=email, role=role, expires_minutes=24 * 60)


if __name__ == "__main__":
    if not AUTH_SECRET:
        print("Error: AUTH_SECRET not set in environment variables")
        sys.exit(1)

    if len(sys.argv) < 3 or sys.argv[2] not in ROLES:
        print(f"Usage: python scripts/generate_token.py <email> <{'|'.join(ROLES)}> [user_id]")
        sys.exit(1)

    email = sys.argv[1]
    role = sys.argv[2]
    user_id = sys.argv[3] if len(sys.argv) > 3 else email

    token = generate_token(email, role, user_id)
    print(f"\n{role} token for {email} (expires in 1 day):")
    print("----------------------------------------------------")
    print(token)
    print("----------------------------------------------------")
    print("\nUse this token for authorization with the header:")
    print(f"Authorization: Bearer {token}")
