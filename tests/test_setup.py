"""Test that the project setup is working correctly."""

import polymarket_copytrader


def test_version() -> None:
    """Test that version is defined."""
    assert polymarket_copytrader.__version__ == "0.1.0"


def test_import_modules() -> None:
    """Test that all submodules can be imported."""
    from polymarket_copytrader import copier
    from polymarket_copytrader import daemon
    from polymarket_copytrader import execution
    from polymarket_copytrader import ingestor
    from polymarket_copytrader import ledger
    from polymarket_copytrader import storage

    # Just verify imports work
    assert copier is not None
    assert daemon is not None
    assert execution is not None
    assert ingestor is not None
    assert ledger is not None
    assert storage is not None
