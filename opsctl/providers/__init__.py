"""Provider adapters, selected once by id from a fixed table."""

from collections.abc import Callable

from opsctl.errors import OpsError
from opsctl.models import ItemKind, ProviderId, RemoteItem
from opsctl.providers.azure import AzureProvider
from opsctl.providers.base import FetchRequest, ProviderAdapter
from opsctl.providers.github import GitHubProvider
from opsctl.providers.gitlab import GitLabProvider
from opsctl.providers.jira import JiraProvider
from opsctl.providers.local import LocalTaskProvider
from opsctl.settings import OpsSettings
from opsctl.store import Collection

__all__ = ["FetchRequest", "ProviderAdapter", "PROVIDERS", "get_provider", "item_ref", "resolve_adapter"]

Factory = Callable[[OpsSettings, Collection], ProviderAdapter]

PROVIDERS: dict[str, tuple[type[ProviderAdapter], Factory]] = {
    "github": (GitHubProvider, lambda settings, collection: GitHubProvider()),
    "gitlab": (GitLabProvider, lambda settings, collection: GitLabProvider(settings)),
    "jira": (JiraProvider, lambda settings, collection: JiraProvider(settings)),
    "azure": (AzureProvider, lambda settings, collection: AzureProvider(settings)),
    "local": (LocalTaskProvider, lambda settings, collection: LocalTaskProvider(collection)),
}


def get_provider(provider_id: str, settings: OpsSettings, collection: Collection) -> ProviderAdapter:
    try:
        _, factory = PROVIDERS[provider_id]
    except KeyError:
        raise OpsError(f"Unknown provider: {provider_id}. Choose from {', '.join(PROVIDERS)}.") from None
    return factory(settings, collection)


def resolve_adapter(
    kind: ItemKind,
    provider_id: ProviderId | None,
    settings: OpsSettings,
    collection: Collection,
) -> ProviderAdapter:
    """Tasks always come from the local store; issues and PRs from the chosen remote."""
    if kind == "task":
        return LocalTaskProvider(collection)
    if provider_id == "local":
        raise OpsError("The local provider only serves --task targets.")
    return get_provider(provider_id or settings.default_provider, settings, collection)


def item_ref(item: RemoteItem) -> str:
    adapter_cls, _ = PROVIDERS[item.provider]
    return adapter_cls.item_ref(item)
