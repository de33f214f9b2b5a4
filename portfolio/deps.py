from typing import Any, Dict, Iterable, List, Mapping, Optional

from fastapi import HTTPException, status
from sqlalchemy import Table, select
from sqlalchemy.orm import Session

from portfolio.database import get_session


def db_session_dependency() -> Iterable[Session]:
    with get_session() as session:
        yield session


def validation_error(errors: Mapping[str, List[str]]) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={field: list(messages) for field, messages in errors.items()},
    )


def errors_by_field(errors: Iterable[Mapping[str, Any]]) -> Dict[str, List[str]]:
    """Group pydantic error entries by their dotted location."""
    grouped: Dict[str, List[str]] = {}
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(loc) or "__root__"
        message = str(error.get("msg", "Invalid value."))
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        grouped.setdefault(field, []).append(message)
    return grouped


def not_found(detail: str = "Not found.") -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


def fetch_or_404(session: Session, table: Table, row_id: int, detail: str) -> Dict[str, Any]:
    row = session.execute(select(table).where(table.c.id == row_id)).mappings().one_or_none()
    if row is None:
        raise not_found(detail)
    return dict(row)


def check_exists(
    session: Session,
    errors: Dict[str, List[str]],
    table: Table,
    field: str,
    value: Optional[int],
) -> None:
    if value is None:
        return
    found = session.execute(select(table.c.id).where(table.c.id == value)).first()
    if found is None:
        errors.setdefault(field, []).append(f"The selected {field} is invalid.")


def check_unique(
    session: Session,
    errors: Dict[str, List[str]],
    table: Table,
    field: str,
    value: Any,
    ignore_id: Optional[int] = None,
) -> None:
    stmt = select(table.c.id).where(table.c[field] == value)
    if ignore_id is not None:
        stmt = stmt.where(table.c.id != ignore_id)
    if session.execute(stmt).first() is not None:
        errors.setdefault(field, []).append(f"The {field} has already been taken.")
