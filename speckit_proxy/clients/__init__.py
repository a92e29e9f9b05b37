"""Upstream API clients.

One thin wrapper per external service. Each builds its URL and auth from
``ProxyConfig``, sends through ``UpstreamClient._send`` and raises
``UpstreamError`` / ``ConfigurationError`` on failure.
"""

from speckit_proxy.clients.base import UpstreamClient, UpstreamResult
from speckit_proxy.clients.chat import ChatCompletionClient
from speckit_proxy.clients.pipelines import PipelineClient, PipelineRun
from speckit_proxy.clients.repo import RepoClient, RepoFileRef

__all__ = [
    "ChatCompletionClient",
    "PipelineClient",
    "PipelineRun",
    "RepoClient",
    "RepoFileRef",
    "UpstreamClient",
    "UpstreamResult",
]
