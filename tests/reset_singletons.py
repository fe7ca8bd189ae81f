"""
Centralized singleton reset utilities for testing.

Singletons that persist across tests can cause:
- A repository configured by one test leaking into the next
- A directory accessor pointing at another test's temp file

Usage in conftest.py:
    @pytest.fixture(autouse=True)
    def reset_singletons_after_test():
        yield
        reset_all_singletons()
"""


def reset_all_singletons() -> None:
    """Reset the repository and identity directory singletons."""
    import sam.services.evidence_repository as evidence_repository
    import sam.services.identity_directory as identity_directory

    evidence_repository._repository = None
    identity_directory._directory = None
