from __future__ import annotations

from typing import Literal

__all__ = ("Role",)

Role = Literal["mapper", "admin"]
