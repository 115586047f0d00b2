from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .aws import ddb
from .settings import S

@dataclass(frozen=True)
class Tables:
    users: Any

T = Tables(
    users=ddb.Table(S.users_table_name),
)
