"""User profile and address models used as read-only input to matching."""

from datetime import date
from pathlib import Path
from typing import Optional

try:
    import yaml
except ModuleNotFoundError as e:
    raise ModuleNotFoundError(
        "PyYAML is required for profile loading. Run: pip install -e ."
    ) from e
from pydantic import BaseModel, Field, field_validator


class Address(BaseModel):
    """Current or past postal address. Duplicates are allowed."""

    line1: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None

    @field_validator("state")
    @classmethod
    def _upper_state(cls, value: Optional[str]) -> Optional[str]:
        value = (value or "").strip().upper()
        return value or None


class UserProfile(BaseModel):
    """Identity and demographic attributes for one user."""

    user_id: str = Field(..., description="Stable user identity (token subject)")

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None

    addresses: list[Address] = Field(default_factory=list)
    interests: list[str] = Field(default_factory=list, description="Brands, products, services used")

    email_connected: bool = False
    subscription_status: Optional[str] = None
    subscription_tier: Optional[str] = None

    def states(self) -> list[str]:
        """Deduplicated address states, in first-seen order."""
        seen: list[str] = []
        for addr in self.addresses:
            if addr.state and addr.state not in seen:
                seen.append(addr.state)
        return seen

    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    def matching_view(self) -> dict:
        """Fields sent to the reasoning service. Credentials never leave the process."""
        return self.model_dump(
            mode="json",
            include={"first_name", "last_name", "date_of_birth", "addresses", "interests"},
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "UserProfile":
        """Load profile from YAML file. Supports nested (identity/addresses) or flat structure."""
        data = yaml.safe_load(Path(path).read_text()) or {}
        identity = data.get("identity", {})

        def _get(key: str, default=None):
            return identity.get(key, data.get(key, default))

        flat: dict = {"user_id": str(_get("user_id", "local"))}
        for key in ("first_name", "last_name", "email", "phone", "date_of_birth"):
            flat[key] = _get(key)
        flat["addresses"] = data.get("addresses") or []
        flat["interests"] = [str(i) for i in (data.get("interests") or [])]
        flat["email_connected"] = bool(_get("email_connected", False))
        return cls.model_validate(flat)
