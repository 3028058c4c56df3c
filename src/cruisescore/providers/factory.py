"""Build the configured provider and admin store from settings."""

from __future__ import annotations

from cruisescore.config.settings import Settings
from cruisescore.providers.base import CruiseDataProvider, DecisionAdminStore
from cruisescore.providers.memory import InMemoryAdminStore, InMemoryCruiseProvider, load_memory_provider
from cruisescore.providers.postgrest import PostgrestAdminStore, PostgrestClient, PostgrestCruiseProvider


def build_backends(settings: Settings) -> tuple[CruiseDataProvider, DecisionAdminStore]:
    """Return a (provider, admin store) pair sharing one backend.

    `provider.kind` selects the JSON catalog (`memory`) or Supabase/PostgREST (`postgrest`).
    """
    if settings.provider.kind == "postgrest":
        client = PostgrestClient(settings)
        return PostgrestCruiseProvider(settings, client), PostgrestAdminStore(settings, client)

    provider: InMemoryCruiseProvider = load_memory_provider(settings.provider.catalog_path)
    return provider, InMemoryAdminStore(overrides=provider.overrides)
