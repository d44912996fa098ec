"""
Which clip provider is active.

The decision is a pure function of two inputs: whether the remote provider
is configured and whether the user explicitly opted into the demo provider
while the remote one was available. ProviderReconciler applies that decision
to a ProviderContext at start-up and on every configuration change.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional

from clipflow.config.provider_config import ProviderConfigStore
from clipflow.config.settings_store import EXPLICIT_DEMO_OPT_IN_KEY, PROVIDER_STORAGE_KEY, SettingsStore
from clipflow.providers.base import ProviderKind, VideoProvider
from clipflow.utils.logging_setup import setup_logger

logger = setup_logger(__name__)


@dataclass(frozen=True)
class ProviderDecision:
    active: ProviderKind
    explicit_opt_in: bool


def decide_provider(configured: bool, explicit_opt_in: bool) -> ProviderDecision:
    if not configured:
        # An opt-in only means something while the remote provider exists.
        return ProviderDecision(ProviderKind.DEMO, False)
    if explicit_opt_in:
        return ProviderDecision(ProviderKind.DEMO, True)
    return ProviderDecision(ProviderKind.GROK, False)


class ProviderContext:
    """Holds the provider instances and which one is active."""

    def __init__(self, providers: Dict[ProviderKind, VideoProvider], active: ProviderKind = ProviderKind.DEMO):
        missing = [kind for kind in ProviderKind if kind not in providers]
        if missing:
            raise ValueError(f"Missing providers: {', '.join(k.value for k in missing)}")
        self.providers = dict(providers)
        self._active = active

    @property
    def active_kind(self) -> ProviderKind:
        return self._active

    def active_provider(self) -> VideoProvider:
        return self.providers[self._active]

    def is_demo(self) -> bool:
        return self._active == ProviderKind.DEMO

    def activate(self, kind: ProviderKind) -> bool:
        """Make kind the active provider; returns whether anything changed."""
        if kind == self._active:
            return False
        logger.info(f"Active provider: {self._active.value} -> {kind.value}")
        self._active = kind
        return True


class ProviderReconciler:
    def __init__(
        self,
        config_store: ProviderConfigStore,
        settings: SettingsStore,
        context: ProviderContext,
        subscribe: bool = True,
    ):
        self.config_store = config_store
        self.settings = settings
        self.context = context
        self._unsubscribe: Optional[Callable[[], None]] = None
        self.reconcile()
        if subscribe:
            self._unsubscribe = config_store.subscribe(self.reconcile)

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    @property
    def explicit_opt_in(self) -> bool:
        return self.settings.get_bool(EXPLICIT_DEMO_OPT_IN_KEY)

    def _store_opt_in(self, value: bool) -> None:
        if value == self.explicit_opt_in:
            return
        if value:
            self.settings.set(EXPLICIT_DEMO_OPT_IN_KEY, True)
        else:
            self.settings.delete(EXPLICIT_DEMO_OPT_IN_KEY)

    def _store_selection(self, kind: Optional[ProviderKind]) -> None:
        stored = self.settings.get_str(PROVIDER_STORAGE_KEY)
        wanted = kind.value if kind is not None else None
        if stored == wanted:
            return
        if wanted is None:
            self.settings.delete(PROVIDER_STORAGE_KEY)
        else:
            self.settings.set(PROVIDER_STORAGE_KEY, wanted)

    def reconcile(self) -> ProviderDecision:
        """Re-derive the active provider. Repeated calls with the same inputs change nothing."""
        configured = self.config_store.is_configured()
        decision = decide_provider(configured, self.explicit_opt_in)

        self._store_opt_in(decision.explicit_opt_in)
        self.context.activate(decision.active)

        stored = self.settings.get_str(PROVIDER_STORAGE_KEY)
        if decision.active == ProviderKind.GROK:
            self._store_selection(ProviderKind.GROK)
        elif stored == ProviderKind.GROK.value or (stored == ProviderKind.DEMO.value and not decision.explicit_opt_in):
            # Demo is a fallback here, not a choice worth remembering.
            self._store_selection(ProviderKind.DEMO if decision.explicit_opt_in else None)
        return decision

    def select(self, kind: ProviderKind) -> bool:
        """
        Manual provider choice.

        Returns False (and changes nothing) when asked for the remote provider
        while it is not configured.
        """
        configured = self.config_store.is_configured()
        if kind == ProviderKind.GROK:
            if not configured:
                logger.warning("Cannot select grok provider: not configured")
                return False
            self._store_opt_in(False)
            self._store_selection(ProviderKind.GROK)
        elif configured:
            self._store_opt_in(True)
            self._store_selection(ProviderKind.DEMO)
        self.context.activate(kind)
        return True
