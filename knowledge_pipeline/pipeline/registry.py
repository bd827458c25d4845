"""
组件注册表

提取器和切分器按 (kind, name) 注册，服务层按配置中的名称取用：

    @register_operator("extractor", "pdf")
    class PdfExtractor(BaseExtractorOperator): ...

    extractor = operator_registry.require("extractor", "pdf")()
"""

from __future__ import annotations

from typing import Any, Callable, Literal

OperatorKind = Literal["extractor", "chunker"]


class OperatorRegistry:

    def __init__(self) -> None:
        self._by_key: dict[tuple[str, str], Any] = {}

    def register(self, kind: OperatorKind, name: str, op: Any) -> None:
        key = (kind, name)
        if key in self._by_key and self._by_key[key] is not op:
            raise ValueError(f"{kind} '{name}' 已被 {self._by_key[key].__name__} 注册")
        self._by_key[key] = op

    def get(self, kind: OperatorKind, name: str) -> Any | None:
        return self._by_key.get((kind, name))

    def require(self, kind: OperatorKind, name: str) -> Any:
        try:
            return self._by_key[(kind, name)]
        except KeyError:
            raise KeyError(f"未注册的 {kind}: {name}（可用: {', '.join(self.list(kind))}）") from None

    def list(self, kind: OperatorKind) -> list[str]:
        return sorted(name for k, name in self._by_key if k == kind)


operator_registry = OperatorRegistry()


def register_operator(kind: OperatorKind, name: str) -> Callable[[Any], Any]:
    def wrapper(op: Any) -> Any:
        operator_registry.register(kind, name, op)
        return op

    return wrapper
