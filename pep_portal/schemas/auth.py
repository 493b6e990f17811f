from pydantic import BaseModel, ConfigDict


class TokenClaims(BaseModel):
    """Claims carried by the bearer token. Trusted as-is; the directory is not re-queried."""
    model_config = ConfigDict(extra="ignore")

    employee_id: str
    name: str | None = None
    email: str | None = None
    reports_to: str | None = None
    is_hr_admin: bool = False
    exp: int | None = None
