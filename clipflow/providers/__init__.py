from .base import ClipData, ProviderKind, VideoProvider
from .reconciler import ProviderContext, ProviderReconciler, decide_provider

__all__ = ["ClipData", "ProviderKind", "VideoProvider", "ProviderContext", "ProviderReconciler", "decide_provider"]
