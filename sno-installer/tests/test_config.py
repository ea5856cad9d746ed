import os
import tempfile
import unittest
from unittest import mock

import yaml

from snoinstaller.lib import config as configuration

_VALID_CONFIG = """
idrac:
  ip: 192.168.1.228
  username: root
  password: calvin
openshift:
  version: "4.16.45"
  cluster_name: sno-hub
remote:
  user: rock
  host: 192.168.1.21
  path: /apps/webcache/OSs/
paths: {}
"""


class TestReadConfig(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.config_file = os.path.join(self._tmp.name, 'idrac_config.yaml')

    def tearDown(self):
        self._tmp.cleanup()

    def _write(self, text):
        with open(self.config_file, 'w') as fh:
            fh.write(text)

    def _write_yaml(self, data):
        self._write(yaml.safe_dump(data))

    def test_defaults(self):
        self._write(_VALID_CONFIG)
        config = configuration.read_config(self.config_file)
        self.assertEqual(config['idrac_ip'], '192.168.1.228')
        self.assertEqual(config['openshift_version'], '4.16.45')
        self.assertFalse(config['idrac_verify_ssl'])
        self.assertEqual(config['idrac_timeout'], 30)
        self.assertEqual(config['idrac_poll_interval'], 10)
        self.assertEqual(config['idrac_poll_attempts'], 30)
        self.assertEqual(config['idrac_settle_time'], 10)
        self.assertEqual(config['remote_iso_url'], 'http://192.168.1.21:8080/OSs/agent.x86_64.iso')
        self.assertEqual(config['remote_password'], 'calvin')
        self.assertEqual(config['paths_workdir'], './workdir')
        self.assertEqual(config['paths_source_dir'], './abi-master-0')
        self.assertEqual(config['paths_ssh_key_path'], os.path.expanduser('~/.ssh/id_ed25519.pub'))
        self.assertFalse(config['logging_debug'])
        self.assertEqual(config['logging_log_file'], 'logs/openshift_sno_hub_install.log')
        self.assertEqual(config['config_file'], self.config_file)

    def test_overrides(self):
        data = yaml.safe_load(_VALID_CONFIG)
        data['idrac'].update({'verify_ssl': 'yes', 'timeout': 5, 'poll_attempts': 2})
        data['remote'].update({'iso_url': 'http://web/agent.iso', 'password': 'hunter2'})
        data['paths'] = {'workdir': '/srv/workdir'}
        data['logging'] = {'debug': True}
        self._write_yaml(data)
        config = configuration.read_config(self.config_file)
        self.assertTrue(config['idrac_verify_ssl'])
        self.assertEqual(config['idrac_timeout'], 5)
        self.assertEqual(config['idrac_poll_attempts'], 2)
        self.assertEqual(config['remote_iso_url'], 'http://web/agent.iso')
        self.assertEqual(config['remote_password'], 'hunter2')
        self.assertEqual(config['paths_workdir'], '/srv/workdir')
        self.assertTrue(config['logging_debug'])

    def test_missing_category(self):
        data = yaml.safe_load(_VALID_CONFIG)
        del data['remote']
        self._write_yaml(data)
        with self.assertRaises(configuration.MalformedConfigurationError) as ctx:
            configuration.read_config(self.config_file)
        self.assertIn('remote', str(ctx.exception))

    def test_missing_required_key(self):
        data = yaml.safe_load(_VALID_CONFIG)
        del data['openshift']['cluster_name']
        self._write_yaml(data)
        with self.assertRaises(configuration.MalformedConfigurationError) as ctx:
            configuration.read_config(self.config_file)
        self.assertIn('cluster_name', str(ctx.exception))

    def test_empty_required_value(self):
        data = yaml.safe_load(_VALID_CONFIG)
        data['idrac']['password'] = ''
        self._write_yaml(data)
        with self.assertRaises(configuration.MalformedConfigurationError) as ctx:
            configuration.read_config(self.config_file)
        self.assertIn('idrac.password', str(ctx.exception))

    def test_non_numeric_timeout(self):
        data = yaml.safe_load(_VALID_CONFIG)
        data['idrac']['timeout'] = 'soon'
        self._write_yaml(data)
        with self.assertRaises(configuration.MalformedConfigurationError):
            configuration.read_config(self.config_file)

    def test_invalid_yaml(self):
        self._write("idrac: [unclosed\n")
        with self.assertRaises(configuration.MalformedConfigurationError):
            configuration.read_config(self.config_file)

    def test_missing_file_writes_template(self):
        with self.assertRaises(configuration.MalformedConfigurationError) as ctx:
            configuration.read_config(self.config_file)
        self.assertIn('idrac.password', str(ctx.exception))
        self.assertTrue(os.path.isfile(self.config_file))

    def test_path_from_environment(self):
        with mock.patch.dict(os.environ, {'SNO_INSTALLER_CONFIG_FILE': self.config_file}):
            self.assertEqual(configuration.get_config_path(), self.config_file)
        with mock.patch.dict(os.environ, clear=True):
            self.assertEqual(configuration.get_config_path(), 'idrac_config.yaml')


class TestTemplate(unittest.TestCase):

    def test_rendered_template_matches_defaults(self):
        data = yaml.safe_load(configuration.render_default_config())
        self.assertEqual(data['idrac']['ip'], configuration.DEFAULT_CONFIG['idrac_ip'])
        self.assertEqual(data['idrac']['password'], '')
        self.assertIs(data['idrac']['verify_ssl'], False)
        self.assertEqual(data['idrac']['poll_attempts'], 30)
        self.assertEqual(data['openshift']['version'], configuration.DEFAULT_CONFIG['openshift_version'])
        self.assertEqual(data['remote']['iso_url'], 'http://192.168.1.21:8080/OSs/agent.x86_64.iso')


class TestPathHelpers(unittest.TestCase):

    def test_key_paths(self):
        for configured in ['/home/op/.ssh/id_ed25519.pub', '/home/op/.ssh/id_ed25519']:
            config = {'paths_ssh_key_path': configured}
            self.assertEqual(configuration.get_ssh_public_key_path(config), '/home/op/.ssh/id_ed25519.pub')
            self.assertEqual(configuration.get_ssh_private_key_path(config), '/home/op/.ssh/id_ed25519')

    def test_workdir_paths(self):
        config = {'paths_workdir': './workdir/'}
        self.assertEqual(configuration.get_lock_path(config), './workdir.lock')
        self.assertEqual(configuration.get_iso_path(config), './workdir/agent.x86_64.iso')


if __name__ == '__main__':
    unittest.main()
