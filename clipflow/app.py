"""Wiring: builds the long-lived objects from a configuration dict."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from clipflow.config.config import load_config
from clipflow.config.provider_config import ProviderConfigStore
from clipflow.config.settings_store import SettingsStore
from clipflow.orchestration.orchestrator import GenerationOrchestrator
from clipflow.orchestration.progress import LiveProgress
from clipflow.providers.base import ProviderKind, VideoProvider
from clipflow.providers.demo import DemoProvider
from clipflow.providers.grok import GrokProvider
from clipflow.providers.reconciler import ProviderContext, ProviderReconciler
from clipflow.sessions.store import SessionStore
from clipflow.utils.logging_setup import configure_logging


@dataclass
class AppContext:
    config: Dict[str, Any]
    settings: SettingsStore
    config_store: ProviderConfigStore
    providers: ProviderContext
    reconciler: ProviderReconciler
    session_store: SessionStore
    orchestrator: GenerationOrchestrator
    progress: LiveProgress

    def close(self) -> None:
        self.reconciler.close()
        self.session_store.close()


def build_app_context(
    config: Optional[Dict[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
    providers: Optional[Dict[ProviderKind, VideoProvider]] = None,
    owner: Optional[str] = None,
    setup_logging: bool = True,
) -> AppContext:
    config = config if config is not None else load_config()
    if setup_logging:
        configure_logging(
            log_file=config["log_file"],
            level=logging.INFO,
            enable_console=bool(config.get("log_console")),
        )

    settings = SettingsStore(config["settings_file"])
    config_store = ProviderConfigStore(settings, environ=environ)
    if providers is None:
        providers = {
            ProviderKind.GROK: GrokProvider(
                config_store,
                timeout_sec=int(config["request_timeout_sec"]),
                verify_video_urls=bool(config["verify_video_urls"]),
            ),
            ProviderKind.DEMO: DemoProvider(
                Path(config["results_dir"]),
                delay_sec=float(config["demo_delay_sec"]),
                fps=int(config["demo_fps"]),
            ),
        }
    context = ProviderContext(providers)
    reconciler = ProviderReconciler(config_store, settings, context)
    session_store = SessionStore.open(config["sessions_db"])
    orchestrator = GenerationOrchestrator(session_store, context, owner=owner)
    progress = LiveProgress(lambda: orchestrator.segments, interval_sec=float(config["progress_tick_sec"]))

    return AppContext(
        config=config,
        settings=settings,
        config_store=config_store,
        providers=context,
        reconciler=reconciler,
        session_store=session_store,
        orchestrator=orchestrator,
        progress=progress,
    )
