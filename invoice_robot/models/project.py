from datetime import date, datetime
from pydantic import BaseModel


class Project(BaseModel):
    id: int | None = None
    netvisor_project_key: int
    project_code: str
    name: str
    address: str | None = None
    project_manager_email: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def label(self) -> str:
        return f"{self.project_code} - {self.name}"
