"""Time-series provider clients for PulseDash.

Each client implements the FitnessProvider ABC and handles:
- Authorized requests using a per-request OAuthCredentials object
- Fetching point datasets and activity sessions for a TimeWindow
- Defensive parsing of provider JSON into RawPoint sequences

Available clients:
    GoogleFitClient — Google Fit REST API v1
"""

from pulsedash.fitness.providers.google_fit import GoogleFitClient

__all__ = [
    "GoogleFitClient",
]

# Registry: source_id → client class
PROVIDER_REGISTRY: dict[str, type] = {
    "google_fit": GoogleFitClient,
}


def get_provider(source_id: str) -> "type":
    """Return the client class for a given provider slug.

    Raises:
        KeyError: If the source_id is not registered.
    """
    if source_id not in PROVIDER_REGISTRY:
        raise KeyError(
            f"No provider registered for source '{source_id}'. "
            f"Available: {list(PROVIDER_REGISTRY)}"
        )
    return PROVIDER_REGISTRY[source_id]
