"""Abstract base class for item providers."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import ClassVar

from pydantic import BaseModel, ConfigDict

from opsctl.models import ItemKind, ProviderId, RemoteItem


class FetchRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: ItemKind
    key: str
    number: int | None = None
    cwd: Path
    repo: str | None = None  # explicit scope; detected when None


class ProviderAdapter(ABC):
    id: ClassVar[ProviderId]

    @abstractmethod
    def detect_repo(self, cwd: Path) -> str: ...

    @abstractmethod
    def fetch_item(self, request: FetchRequest) -> RemoteItem: ...

    @staticmethod
    @abstractmethod
    def item_ref(item: RemoteItem) -> str: ...
