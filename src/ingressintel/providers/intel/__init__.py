"""Ingress Intel provider package."""

from ingressintel.providers.intel.client import IntelClient
from ingressintel.providers.intel.csrf import CsrfTokenExtractor
from ingressintel.providers.intel.login import FacebookLoginFlow
from ingressintel.providers.intel.pipeline import (
    AuthenticatedRequestPipeline,
    DefaultResponseClassifier,
)
from ingressintel.providers.intel.session import Session

__all__ = [
    "AuthenticatedRequestPipeline",
    "CsrfTokenExtractor",
    "DefaultResponseClassifier",
    "FacebookLoginFlow",
    "IntelClient",
    "Session",
]
