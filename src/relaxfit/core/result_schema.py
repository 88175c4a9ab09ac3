from __future__ import annotations

from collections.abc import Mapping
from typing import Any

_NESTED_KEYS = frozenset({"params", "quality", "diagnostics"})


class FitResult(dict[str, Any]):
    """Estimated parameters plus fit quality and diagnostics.

    Behaves like the parameter dictionary (``result["t1"]``); the quality
    block (``rmse``, ``n_points``, ``status``) and free-form diagnostics
    (residual vectors, strategy name, status maps) are attributes. The
    nested spelling ``result["quality"]`` is accepted as well.
    """

    __slots__ = ("quality", "diagnostics")

    def __init__(
        self,
        *,
        params: Mapping[str, Any] | None = None,
        quality: Mapping[str, Any] | None = None,
        diagnostics: Mapping[str, Any] | None = None,
        default_status: str = "ok",
    ) -> None:
        super().__init__(dict(params or {}))
        q = dict(quality or {})
        q.setdefault("rmse", None)
        q.setdefault("n_points", None)
        q.setdefault("status", default_status)
        self.quality: dict[str, Any] = q
        self.diagnostics: dict[str, Any] = dict(diagnostics or {})

    @property
    def params(self) -> dict[str, Any]:
        return self

    def __getitem__(self, key: str) -> Any:
        if key == "params":
            return self.params
        if key == "quality":
            return self.quality
        if key == "diagnostics":
            return self.diagnostics
        return super().__getitem__(key)

    def get(self, key: str, default: Any = None) -> Any:
        if key in _NESTED_KEYS:
            return self[key]
        return super().get(key, default)

    def __contains__(self, key: object) -> bool:
        if key in _NESTED_KEYS:
            return True
        return super().__contains__(key)

    def to_dict(self) -> dict[str, Any]:
        return {
            "params": dict(self),
            "quality": dict(self.quality),
            "diagnostics": dict(self.diagnostics),
        }

    def copy(self) -> FitResult:
        return FitResult(params=self, quality=self.quality, diagnostics=self.diagnostics)

    def __repr__(self) -> str:
        return (
            f"FitResult(params={dict(self)!r}, "
            f"quality={self.quality!r}, diagnostics={self.diagnostics!r})"
        )
