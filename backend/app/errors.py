class SourceUnavailableError(Exception):
    """A single search provider could not answer (network, status, payload)."""


class UpstreamMetadataError(Exception):
    """The keyword/metadata LLM call failed or returned something unusable."""


class FallbackCatalogError(Exception):
    pass
