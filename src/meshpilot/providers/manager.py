"""Provider manager: registration and routing by model reference."""

from __future__ import annotations

from typing import TYPE_CHECKING

from meshpilot.core.errors import ModelNotFoundError

if TYPE_CHECKING:
    from meshpilot.providers.base import ModelProvider


class ProviderManager:
    """Central registry for provider adapters.

    Routes a ``model_ref`` to a provider. A ref whose prefix before the
    first ``:`` names a registered provider goes to that provider with
    the prefix stripped (``anthropic:claude-sonnet-4-5``). Anything else
    (``google/gemini-2.5-flash``) goes to the default provider unchanged.
    """

    def __init__(self, *, default_provider: str | None = None) -> None:
        self._providers: dict[str, ModelProvider] = {}
        self._default = default_provider

    # ── Registration ─────────────────────────────────────────────

    def register(self, provider: ModelProvider, *, default: bool = False) -> None:
        """Register a provider.

        The first registered provider becomes the default unless one
        was named explicitly.

        Raises:
            ValueError: If a provider with the same provider_id is
                already registered.
        """
        pid = provider.provider_id
        if pid in self._providers:
            msg = f"Provider already registered: {pid}"
            raise ValueError(msg)
        self._providers[pid] = provider
        if default or self._default is None:
            self._default = pid

    def unregister(self, provider_id: str) -> None:
        """Remove a provider from the registry.

        Raises:
            KeyError: If the provider_id is not registered.
        """
        if provider_id not in self._providers:
            msg = f"Provider not registered: {provider_id}"
            raise KeyError(msg)
        del self._providers[provider_id]
        if self._default == provider_id:
            self._default = next(iter(self._providers), None)

    @property
    def provider_ids(self) -> list[str]:
        return list(self._providers)

    @property
    def default_provider(self) -> str | None:
        return self._default

    # ── Routing ──────────────────────────────────────────────────

    def get_provider(self, model_ref: str) -> tuple[ModelProvider, str]:
        """Resolve a model_ref to its provider and model_id.

        Returns:
            (provider, model_id) tuple for direct send calls.

        Raises:
            ModelNotFoundError: If no provider can serve the ref.
        """
        prefix, sep, model_id = model_ref.partition(":")
        if sep and prefix in self._providers:
            if not model_id:
                raise ModelNotFoundError(prefix, f"Model not found: {model_ref}")
            return self._providers[prefix], model_id

        if self._default is None or self._default not in self._providers:
            raise ModelNotFoundError("unknown", f"No provider for model: {model_ref}")
        return self._providers[self._default], model_ref

    def ensure_ready(self, *model_refs: str) -> None:
        """Preflight the providers serving *model_refs*.

        Raises:
            ModelNotFoundError: If a ref cannot be routed.
            ConfigError: If a provider is missing credentials or bindings.
        """
        seen: set[str] = set()
        for ref in model_refs:
            provider, _ = self.get_provider(ref)
            if provider.provider_id not in seen:
                seen.add(provider.provider_id)
                provider.ensure_ready()
