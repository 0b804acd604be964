"""
Operator Auth - sign-in of packing operators.

Operators are stored in <DataDir>/operators.json:

    {
      "ops@example.com": {
        "email": "ops@example.com",
        "name": "Jane Smith",
        "active": true,
        "salt": "<hex>",
        "password_hash": "<hex pbkdf2-sha256>",
        "created_at": "2025-11-05T09:00:00"
      }
    }
"""
import hashlib
import hmac
import json
import os
import secrets
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from PySide6.QtCore import QObject, Signal

from exceptions import AuthenticationError
from logger import get_logger, set_operator_context

logger = get_logger(__name__)

OPERATORS_FILE_NAME = "operators.json"
PBKDF2_ITERATIONS = 200_000


def _hash_password(password: str, salt: bytes) -> str:
    return hashlib.pbkdf2_hmac('sha256', password.encode('utf-8'), salt, PBKDF2_ITERATIONS).hex()


def _normalize_email(email: str) -> str:
    return email.strip().lower()


class OperatorAuth(QObject):
    """
    Signs operators in and out and broadcasts the signed-in state.

    Attributes:
        auth_state_changed (Signal): Emitted with True/False whenever the state flips
        operators_file (Path): JSON file with operator profiles
        current_operator (Dict | None): Profile of the signed-in operator
    """
    auth_state_changed = Signal(bool)

    def __init__(self, data_dir: Path, parent: Optional[QObject] = None):
        super().__init__(parent)
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.operators_file = self.data_dir / OPERATORS_FILE_NAME
        self.current_operator: Optional[Dict] = None
        logger.info(f"OperatorAuth initialized with operators file: {self.operators_file}")

    @property
    def is_signed_in(self) -> bool:
        return self.current_operator is not None

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def _load_operators(self) -> Dict[str, Dict]:
        if not self.operators_file.exists():
            return {}
        try:
            with open(self.operators_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.error(f"Error loading operators file {self.operators_file}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save_operators(self, operators: Dict[str, Dict]) -> None:
        tmp_path = self.operators_file.with_suffix('.json.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(operators, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, self.operators_file)

    def register_operator(self, email: str, password: str, name: str = "") -> Dict:
        """
        Create or replace an operator profile.

        Args:
            email: Sign-in e-mail (case-insensitive)
            password: Plain password, stored as salted PBKDF2 hash
            name: Display name

        Returns:
            The stored profile without hash fields

        Raises:
            ValueError: If email or password is blank
        """
        key = _normalize_email(email)
        if not key or not password:
            raise ValueError("Email and password are required")

        salt = secrets.token_bytes(16)
        profile = {
            'email': key,
            'name': name or key,
            'active': True,
            'salt': salt.hex(),
            'password_hash': _hash_password(password, salt),
            'created_at': datetime.now().isoformat(),
        }
        operators = self._load_operators()
        operators[key] = profile
        self._save_operators(operators)
        logger.info(f"Operator registered: {key}")
        return self._public_profile(profile)

    def set_operator_active(self, email: str, active: bool) -> bool:
        """Activate or deactivate an operator. Returns False if the operator is unknown."""
        key = _normalize_email(email)
        operators = self._load_operators()
        if key not in operators:
            logger.warning(f"Cannot change state of unknown operator: {key}")
            return False
        operators[key]['active'] = active
        self._save_operators(operators)
        logger.info(f"Operator {key} {'activated' if active else 'deactivated'}")
        return True

    @staticmethod
    def _public_profile(profile: Dict) -> Dict:
        return {k: v for k, v in profile.items() if k not in ('salt', 'password_hash')}

    # ------------------------------------------------------------------
    # Sign-in
    # ------------------------------------------------------------------

    def sign_in(self, email: str, password: str) -> Dict:
        """
        Verify credentials and make the operator current.

        Returns:
            Public profile of the signed-in operator

        Raises:
            AuthenticationError: Blank credentials, unknown operator, wrong
                                 password, or deactivated operator
        """
        key = _normalize_email(email or "")
        if not key or not password:
            raise AuthenticationError("Email and password are required", email=key)

        profile = self._load_operators().get(key)
        if profile is None:
            logger.warning(f"Sign-in rejected for unknown operator: {key}")
            raise AuthenticationError("Invalid email or password", email=key)

        try:
            salt = bytes.fromhex(profile.get('salt', ''))
        except ValueError:
            salt = b''
        expected = profile.get('password_hash', '')
        if not salt or not hmac.compare_digest(_hash_password(password, salt), expected):
            logger.warning(f"Sign-in rejected for {key}: wrong password")
            raise AuthenticationError("Invalid email or password", email=key)

        if not profile.get('active', True):
            logger.warning(f"Sign-in rejected for deactivated operator: {key}")
            raise AuthenticationError("This operator account is disabled", email=key)

        was_signed_in = self.is_signed_in
        self.current_operator = self._public_profile(profile)
        set_operator_context(key)
        logger.info(f"Operator signed in: {key}")
        if not was_signed_in:
            self.auth_state_changed.emit(True)
        return self.current_operator

    def sign_out(self) -> None:
        if not self.is_signed_in:
            return
        logger.info(f"Operator signed out: {self.current_operator.get('email')}")
        self.current_operator = None
        set_operator_context(None)
        self.auth_state_changed.emit(False)
