import os
import shutil
import tempfile
import unittest
from unittest import mock

from zabbix_dump import cli
from zabbix_dump.backup import ConfigurationError, DumpError


class ParseArgsTestCase(unittest.TestCase):

    def test_defaults(self):
        config = cli.build_config(cli.parse_args(['-p', 'secret']), {})
        self.assertEqual(config['database']['host'], '127.0.0.1')
        self.assertEqual(config['database']['db'], 'zabbix')
        self.assertEqual(config['database']['user'], 'zabbix')
        self.assertEqual(config['database']['passwd'], 'secret')
        self.assertEqual(config['output_dir'], '.')
        self.assertEqual(config['retention'], 0)
        self.assertTrue(config['reverse_lookup'])
        self.assertFalse(config['quiet'])

    def test_flags(self):
        args = cli.parse_args(['-h', 'db1', '-d', 'zbx', '-u', 'backup', '-p', 'pw',
                               '-o', '/tmp/out', '-r', '5', '-q', '-n', '-P', '3307'])
        config = cli.build_config(args, {})
        self.assertEqual(config['database']['host'], 'db1')
        self.assertEqual(config['database']['port'], 3307)
        self.assertEqual(config['database']['db'], 'zbx')
        self.assertEqual(config['database']['user'], 'backup')
        self.assertEqual(config['output_dir'], '/tmp/out')
        self.assertEqual(config['retention'], 5)
        self.assertTrue(config['quiet'])
        self.assertFalse(config['reverse_lookup'])

    def test_bad_argument_exits_with_one(self):
        with mock.patch('sys.stderr'):
            with self.assertRaises(SystemExit) as ctx:
                cli.parse_args(['-r', 'many'])
        self.assertEqual(ctx.exception.code, 1)

    def test_command_line_overrides_config_file(self):
        file_config = {
            'database': {'host': 'db-from-file', 'user': 'fileuser', 'passwd': 'filepw'},
            'retention': 7,
            'output_dir': '/var/backups/zabbix',
        }
        config = cli.build_config(cli.parse_args(['-h', 'db-from-cli']), file_config)
        self.assertEqual(config['database']['host'], 'db-from-cli')
        self.assertEqual(config['database']['user'], 'fileuser')
        self.assertEqual(config['database']['passwd'], 'filepw')
        self.assertEqual(config['retention'], 7)
        self.assertEqual(config['output_dir'], '/var/backups/zabbix')


class ConfigFileTestCase(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.tmpdir)

    def test_load_yaml(self):
        path = os.path.join(self.tmpdir, 'zabbix_dump.conf')
        with open(path, 'w') as f:
            f.write("database:\n  host: db1\n  db: zabbix\nretention: 3\nlogging: syslog\n")
        config = cli.load_config(path)
        self.assertEqual(config['database']['host'], 'db1')
        self.assertEqual(config['retention'], 3)
        self.assertEqual(config['logging'], 'syslog')

    def test_missing_file(self):
        with self.assertRaises(ConfigurationError):
            cli.load_config(os.path.join(self.tmpdir, 'missing.conf'))

    def test_not_a_mapping(self):
        path = os.path.join(self.tmpdir, 'list.conf')
        with open(path, 'w') as f:
            f.write("- a\n- b\n")
        with self.assertRaises(ConfigurationError):
            cli.load_config(path)

    def test_no_path(self):
        self.assertEqual(cli.load_config(None), {})


class CredentialsTestCase(unittest.TestCase):

    def test_password_required(self):
        config = cli.build_config(cli.parse_args([]), {})
        with self.assertRaises(ConfigurationError):
            cli.resolve_credentials(config)

    def test_password_prompt(self):
        config = cli.build_config(cli.parse_args(['-p', '-']), {})
        with mock.patch('zabbix_dump.cli.getpass.getpass', return_value='typed') as prompt:
            cli.resolve_credentials(config)
        prompt.assert_called_once()
        self.assertEqual(config['database']['passwd'], 'typed')

    def test_empty_prompt_rejected(self):
        config = cli.build_config(cli.parse_args(['-p', '-']), {})
        with mock.patch('zabbix_dump.cli.getpass.getpass', return_value=''):
            with self.assertRaises(ConfigurationError):
                cli.resolve_credentials(config)

    def test_credentials_file(self):
        with tempfile.NamedTemporaryFile('w', suffix='.cnf', delete=False) as f:
            f.write("[client]\nuser=zabbix\npassword=secret\n")
        self.addCleanup(os.remove, f.name)

        config = cli.build_config(cli.parse_args(['-c', f.name]), {})
        cli.resolve_credentials(config)
        self.assertEqual(config['database']['credentials'], f.name)

    def test_missing_credentials_file(self):
        config = cli.build_config(cli.parse_args(['-c', '/nonexistent/backup.cnf', '-p', 'pw']), {})
        with self.assertRaises(ConfigurationError):
            cli.resolve_credentials(config)

    def test_retention_from_config_file_is_coerced(self):
        config = cli.build_config(cli.parse_args(['-p', 'pw']), {'retention': '7'})
        cli.resolve_credentials(config)
        self.assertEqual(config['retention'], 7)

    def test_retention_not_a_number(self):
        config = cli.build_config(cli.parse_args(['-p', 'pw']), {'retention': 'seven'})
        with self.assertRaises(ConfigurationError):
            cli.resolve_credentials(config)

    def test_negative_retention(self):
        config = cli.build_config(cli.parse_args(['-p', 'pw', '-r', '-1']), {})
        with self.assertRaises(ConfigurationError):
            cli.resolve_credentials(config)


class MainTestCase(unittest.TestCase):

    def setUp(self):
        patcher = mock.patch('zabbix_dump.cli.setup_logging')
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_success(self):
        with mock.patch('zabbix_dump.cli.ZabbixDump') as app_class:
            cli.main(['-p', 'secret', '-n'])
        config = app_class.call_args.args[0]
        self.assertFalse(config['reverse_lookup'])
        app_class.return_value.run.assert_called_once()

    def test_dump_failure_exits_with_one(self):
        with mock.patch('zabbix_dump.cli.ZabbixDump') as app_class, mock.patch('sys.stderr'):
            app_class.return_value.run.side_effect = DumpError("Dump of table 'items' failed")
            with self.assertRaises(SystemExit) as ctx:
                cli.main(['-p', 'secret'])
        self.assertEqual(ctx.exception.code, 1)

    def test_missing_password_exits_before_backup(self):
        with mock.patch('zabbix_dump.cli.ZabbixDump') as app_class, mock.patch('sys.stderr'):
            with self.assertRaises(SystemExit) as ctx:
                cli.main([])
        self.assertEqual(ctx.exception.code, 1)
        app_class.assert_not_called()


if __name__ == '__main__':
    unittest.main()
