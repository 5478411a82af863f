"""
Unit tests for the PortMigrator class and its batching and confirmation
helpers.

The Port client is a MagicMock and confirmations are scripted, so every run is
deterministic and nothing touches the network or standard input.
"""
# pylint: disable=redefined-outer-name
import logging
from unittest.mock import MagicMock, call

import pytest

from port_github_migrator.exceptions import AuthenticationError, FetchError, PatchError
from port_github_migrator.migrator import (
    ConsoleConfirmation,
    PortMigrator,
    ScriptedConfirmation,
    create_batches,
    is_confirmed,
)
from port_github_migrator.models import Entity

NEW_DATASOURCE = "port-ocean/github-ocean/0.2.7/new-inst/exporter"


def _entities(blueprint, count):
    return [Entity(identifier=f"{blueprint}-{i}", blueprint=blueprint) for i in range(count)]


@pytest.fixture
def mock_config():
    mock_cfg = MagicMock()
    mock_cfg.OLD_INSTALLATION_ID = "old-inst"
    return mock_cfg


@pytest.fixture
def mock_client():
    """A client whose blueprints hold the entity counts in `counts`."""
    client = MagicMock()
    client.counts = {"service": 250, "pull_request": 3}
    client.get_blueprints_by_datasource.side_effect = lambda _id: list(client.counts)
    client.search_old_entities.side_effect = (
        lambda blueprint, _id: _entities(blueprint, client.counts[blueprint])
    )
    return client


@pytest.fixture
def audit_logger():
    return MagicMock(spec=logging.Logger)


def _migrator(client, config, audit_logger, *answers):
    return PortMigrator(client, config, audit_logger, ScriptedConfirmation(*answers))


def test_create_batches_splits_in_order():
    items = [str(i) for i in range(250)]

    batches = create_batches(items, 100)

    assert [len(b) for b in batches] == [100, 100, 50]
    assert [i for batch in batches for i in batch] == items


@pytest.mark.parametrize("count, expected", [(0, 0), (1, 1), (100, 1), (101, 2), (1000, 10)])
def test_create_batches_count(count, expected):
    batches = create_batches(range(count))

    assert len(batches) == expected
    assert all(len(b) <= 100 for b in batches)
    assert sum(len(b) for b in batches) == count


@pytest.mark.parametrize(
    "answer, expected",
    [("yes", True), ("yes\n", False), (" yes", False), ("yes ", False), ("\tyes\t", False),
     ("y", False), ("YES", False), ("Yes", False), ("", False), ("yes please", False),
     (None, False)],
)
def test_is_confirmed(answer, expected):
    assert is_confirmed(answer) is expected


def test_migrate_all_blueprints(mock_client, mock_config, audit_logger):
    migrator = _migrator(mock_client, mock_config, audit_logger, "yes")

    stats = migrator.migrate(NEW_DATASOURCE)

    mock_client.get_blueprints_by_datasource.assert_called_once_with("old-inst")
    assert stats.total_blueprints == 2
    assert stats.total_entities == 253
    assert stats.total_batches == 4
    assert stats.successful_batches == 4
    assert stats.failed_batches == 0
    assert stats.exit_code == 0
    first_call = mock_client.patch_entities_datasource_bulk.call_args_list[0]
    assert first_call == call(
        "service", [f"service-{i}" for i in range(100)], NEW_DATASOURCE
    )
    assert audit_logger.info.call_count == 4


def test_failed_batch_does_not_stop_the_run(mock_client, mock_config, audit_logger, caplog):
    """250 entities, batch 2 of 3 fails: batch 3 is still attempted."""
    caplog.set_level(logging.INFO)
    mock_client.counts = {"service": 250}
    mock_client.patch_entities_datasource_bulk.side_effect = [
        None,
        PatchError("Failed to patch entities for blueprint service: 500: boom"),
        None,
    ]
    migrator = _migrator(mock_client, mock_config, audit_logger, "yes")

    stats = migrator.migrate(NEW_DATASOURCE)

    sizes = [len(c.args[1]) for c in mock_client.patch_entities_datasource_bulk.call_args_list]
    assert sizes == [100, 100, 50]
    assert stats.total_batches == 3
    assert stats.successful_batches == 2
    assert stats.failed_batches == 1
    assert stats.exit_code == 1
    assert len(stats.errors) == 1
    assert stats.errors[0].startswith("Batch 2 for blueprint service:")
    assert "Batches: 2/3 successful, 1 failed" in caplog.text
    assert "Errors:" in caplog.text
    assert "  Batch 2 for blueprint service: Failed to patch entities" in caplog.text
    assert "Migration completed with 1 failed batches (Success rate: 66.67%)" in caplog.text


def test_failed_batch_does_not_stop_later_blueprints(mock_client, mock_config, audit_logger):
    mock_client.counts = {"service": 1, "pull_request": 1}
    mock_client.patch_entities_datasource_bulk.side_effect = [PatchError("boom"), None]
    migrator = _migrator(mock_client, mock_config, audit_logger, "yes")

    stats = migrator.migrate(NEW_DATASOURCE)

    assert mock_client.patch_entities_datasource_bulk.call_count == 2
    assert stats.failed_batches == 1
    assert stats.successful_batches == 1


@pytest.mark.parametrize("answer", ["y", "YES", "", "no", " yes", "yes ", "\tyes\t"])
def test_declined_confirmation_changes_nothing(mock_client, mock_config, audit_logger, answer):
    confirmation = ScriptedConfirmation(answer)
    migrator = PortMigrator(mock_client, mock_config, audit_logger, confirmation)

    stats = migrator.migrate(NEW_DATASOURCE)

    assert len(confirmation.prompts) == 1
    mock_client.patch_entities_datasource_bulk.assert_not_called()
    assert stats.total_batches == 0
    assert stats.exit_code == 0


def test_no_entities_skips_confirmation(mock_client, mock_config, audit_logger, caplog):
    caplog.set_level(logging.INFO)
    mock_client.counts = {"service": 0, "pull_request": 0}
    confirmation = ScriptedConfirmation("yes")
    migrator = PortMigrator(mock_client, mock_config, audit_logger, confirmation)

    stats = migrator.migrate(NEW_DATASOURCE)

    assert confirmation.prompts == []
    mock_client.patch_entities_datasource_bulk.assert_not_called()
    assert stats.total_batches == 0
    assert stats.exit_code == 0
    assert "No entities found to migrate. Exiting." in caplog.text
    assert "Batches:" not in caplog.text


def test_no_blueprints_ends_run(mock_client, mock_config, audit_logger):
    mock_client.counts = {}
    migrator = _migrator(mock_client, mock_config, audit_logger, "yes")

    stats = migrator.migrate(NEW_DATASOURCE)

    mock_client.search_old_entities.assert_not_called()
    assert stats.total_blueprints == 0
    assert stats.exit_code == 0


def test_single_blueprint_skips_discovery(mock_client, mock_config, audit_logger):
    migrator = _migrator(mock_client, mock_config, audit_logger, "yes")

    stats = migrator.migrate(NEW_DATASOURCE, blueprint_identifier="pull_request")

    mock_client.get_blueprints_by_datasource.assert_not_called()
    mock_client.search_old_entities.assert_called_once_with("pull_request", "old-inst")
    assert stats.total_blueprints == 1
    assert stats.total_entities == 3
    assert stats.total_batches == 1


def test_count_failure_is_recorded_and_others_continue(mock_client, mock_config, audit_logger):
    def search(blueprint, _id):
        if blueprint == "service":
            raise FetchError("Searching entities for blueprint 'service' failed: 400: bad")
        return _entities(blueprint, 3)

    mock_client.search_old_entities.side_effect = search
    migrator = _migrator(mock_client, mock_config, audit_logger, "yes")

    stats = migrator.migrate(NEW_DATASOURCE)

    mock_client.patch_entities_datasource_bulk.assert_called_once()
    assert mock_client.patch_entities_datasource_bulk.call_args.args[0] == "pull_request"
    assert stats.total_entities == 3
    assert stats.errors[0].startswith("Blueprint service:")
    assert stats.exit_code == 0


def test_all_counts_failing_counts_as_no_entities(mock_client, mock_config, audit_logger):
    mock_client.search_old_entities.side_effect = FetchError("down")
    confirmation = ScriptedConfirmation("yes")
    migrator = PortMigrator(mock_client, mock_config, audit_logger, confirmation)

    stats = migrator.migrate(NEW_DATASOURCE)

    assert confirmation.prompts == []
    assert len(stats.errors) == 2
    assert stats.exit_code == 0


def test_dry_run_patches_nothing(mock_client, mock_config, audit_logger):
    confirmation = ScriptedConfirmation("yes")
    migrator = PortMigrator(mock_client, mock_config, audit_logger, confirmation)

    stats = migrator.migrate(NEW_DATASOURCE, dry_run=True)

    assert len(confirmation.prompts) == 1
    mock_client.patch_entities_datasource_bulk.assert_not_called()
    assert stats.total_blueprints == 2
    assert stats.total_entities == 253
    assert stats.total_batches == 0
    assert stats.exit_code == 0


def test_authentication_error_aborts_the_run(mock_client, mock_config, audit_logger):
    mock_client.patch_entities_datasource_bulk.side_effect = AuthenticationError("denied")
    migrator = _migrator(mock_client, mock_config, audit_logger, "yes")

    with pytest.raises(AuthenticationError):
        migrator.migrate(NEW_DATASOURCE)
    mock_client.patch_entities_datasource_bulk.assert_called_once()


def test_console_confirmation_reads_input():
    prompts = []

    def fake_input(prompt):
        prompts.append(prompt)
        return "yes"

    assert ConsoleConfirmation(fake_input).ask("Proceed? ") == "yes"
    assert prompts == ["Proceed? "]


def test_console_confirmation_end_of_input_declines():
    def closed_stdin(_prompt):
        raise EOFError

    assert not is_confirmed(ConsoleConfirmation(closed_stdin).ask("Proceed? "))
