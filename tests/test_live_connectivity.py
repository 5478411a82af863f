"""
This module contains an integration test that checks authentication and
blueprint discovery against a live Port organisation.

It only runs when PORT_CLIENT_ID, PORT_CLIENT_SECRET and OLD_INSTALLATION_ID
are set (a .env file works), and makes no changes.
"""
import pytest

from port_github_migrator import config
from port_github_migrator.api_client import PortClient

pytestmark = pytest.mark.skipif(
    not all([config.PORT_CLIENT_ID, config.PORT_CLIENT_SECRET, config.OLD_INSTALLATION_ID]),
    reason="Port credentials are not configured",
)


def test_live_blueprint_discovery():
    """
    Discovers the blueprints of the old installation and counts the entities
    of the first one.
    """
    client = PortClient(config.Settings())

    blueprints = client.get_blueprints_by_datasource(config.OLD_INSTALLATION_ID)
    print(f"Found {len(blueprints)} blueprints: {blueprints}")

    assert isinstance(blueprints, list)
    if blueprints:
        entities = client.search_old_entities(blueprints[0], config.OLD_INSTALLATION_ID)
        print(f"{blueprints[0]}: {len(entities)} entities owned by the old installation")
        assert all(entity.blueprint == blueprints[0] for entity in entities)
