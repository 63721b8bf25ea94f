"""
Tests for configuration loading
"""

import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from homenode import InvalidConfiguration, NodeState
from homenode.config import Config, load_config


class ConfigTestCase(unittest.TestCase):
    """Runs each test with an empty HOME_NODE_* environment and no .env."""

    def setUp(self):
        env = {k: v for k, v in os.environ.items() if not k.startswith('HOME_NODE_')}
        self.env_patch = patch.dict(os.environ, env, clear=True)
        self.env_patch.start()

        self.dotenv_patch = patch('homenode.config.load_dotenv')
        self.dotenv_patch.start()

        self.tmp = tempfile.TemporaryDirectory()
        self.tmp_path = Path(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()
        self.dotenv_patch.stop()
        self.env_patch.stop()

    def write_config(self, data: dict) -> Path:
        path = self.tmp_path / 'config.json'
        path.write_text(json.dumps(data))
        return path


class TestDefaults(ConfigTestCase):

    def test_defaults(self):
        config = Config()

        self.assertEqual(config.multicast_address, '239.255.0.1')
        self.assertEqual(config.broadcast_port, 49152)
        self.assertEqual(config.listen_timeout, 5.0)
        self.assertEqual(config.log_level, 'INFO')
        self.assertTrue(config.node_name)


class TestFromEnv(ConfigTestCase):

    def test_reads_environment(self):
        os.environ.update({
            'HOME_NODE_NAME': 'garage',
            'HOME_NODE_MULTICAST_ADDRESS': '224.0.0.5',
            'HOME_NODE_BROADCAST_PORT': '5353',
            'HOME_NODE_LISTEN_TIMEOUT': '2.5',
            'HOME_NODE_LOG_LEVEL': 'DEBUG',
        })

        config = Config.from_env()

        self.assertEqual(config.node_name, 'garage')
        self.assertEqual(config.multicast_address, '224.0.0.5')
        self.assertEqual(config.broadcast_port, 5353)
        self.assertEqual(config.listen_timeout, 2.5)
        self.assertEqual(config.log_level, 'DEBUG')

    def test_bad_port_number(self):
        os.environ['HOME_NODE_BROADCAST_PORT'] = 'eighty'

        with self.assertRaises(InvalidConfiguration):
            Config.from_env()


class TestFromFile(ConfigTestCase):

    def test_missing_file_gives_defaults(self):
        config = Config.from_file(self.tmp_path / 'missing.json')

        self.assertEqual(config.broadcast_port, 49152)

    def test_partial_file(self):
        path = self.write_config({'broadcast_port': 6000, 'node_name': 'attic'})

        config = Config.from_file(path)

        self.assertEqual(config.broadcast_port, 6000)
        self.assertEqual(config.node_name, 'attic')
        self.assertEqual(config.multicast_address, '239.255.0.1')

    def test_save(self):
        config = Config(node_name='hall', broadcast_port=6001)
        path = self.tmp_path / 'saved.json'

        config.save(path)

        self.assertEqual(json.loads(path.read_text()), config.to_dict())


class TestLoadConfig(ConfigTestCase):

    def test_no_file(self):
        config = load_config(None)

        self.assertEqual(config.broadcast_port, 49152)

    def test_environment_overrides_file(self):
        path = self.write_config({'broadcast_port': 6000, 'multicast_address': '224.0.0.9'})
        os.environ['HOME_NODE_BROADCAST_PORT'] = '7000'

        config = load_config(path)

        self.assertEqual(config.broadcast_port, 7000)
        self.assertEqual(config.multicast_address, '224.0.0.9')

    def test_environment_equal_to_default_overrides_file(self):
        path = self.write_config({'broadcast_port': 6000, 'log_level': 'DEBUG'})
        os.environ['HOME_NODE_BROADCAST_PORT'] = '49152'
        os.environ['HOME_NODE_LOG_LEVEL'] = 'INFO'

        config = load_config(path)

        self.assertEqual(config.broadcast_port, 49152)
        self.assertEqual(config.log_level, 'INFO')

    def test_unset_environment_keeps_file(self):
        path = self.write_config({'node_name': 'attic', 'listen_timeout': 2.5})

        config = load_config(path)

        self.assertEqual(config.node_name, 'attic')
        self.assertEqual(config.listen_timeout, 2.5)


class TestCreateNode(ConfigTestCase):

    def test_applies_settings(self):
        config = Config(node_name='porch', multicast_address='224.0.0.5',
                        broadcast_port=5353)

        node = config.create_node()

        self.assertEqual(node.name, 'porch')
        self.assertEqual(node.multicast_address, '224.0.0.5')
        self.assertEqual(node.broadcast_port, 5353)
        self.assertIs(node.state, NodeState.IDLE)

    def test_rejects_bad_address(self):
        config = Config(multicast_address='10.0.0.1')

        with self.assertRaises(InvalidConfiguration):
            config.create_node()

    def test_rejects_bad_port(self):
        config = Config(broadcast_port=0)

        with self.assertRaises(InvalidConfiguration):
            config.create_node()


if __name__ == '__main__':
    unittest.main()
