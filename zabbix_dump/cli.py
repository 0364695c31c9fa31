# -*- coding: utf-8 -*-
"""
Command line entry point for zabbix-dump.
"""

import os
import sys
import getpass
import argparse
import logging
import logging.handlers
from typing import Optional, Dict, List, Any

import yaml

from zabbix_dump import VERSION
from zabbix_dump.backup import ZabbixDump, ConfigurationError

DEFAULTS = {
    'database': {
        'host': '127.0.0.1',
        'port': 3306,
        'socket': None,
        'user': 'zabbix',
        'passwd': None,
        'db': 'zabbix',
        'credentials': None,
    },
    'output_dir': '.',
    'retention': 0,
    'reverse_lookup': True,
    'logging': 'console',
    'quiet': False,
}


class ArgumentParser(argparse.ArgumentParser):
    """argparse exits with 2 on usage errors, this tool always uses 1."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def parse_args(argv: Optional[List[str]] = None):
    parser = ArgumentParser(
        description='Zabbix Configuration Backup (MySQL)',
        epilog='''
Dumps all configuration tables in full and only the schema of the large
data tables (history, trends, events, ...).

Examples:
  # Password prompt, keep the 7 newest backups
  %(prog)s -u zabbix -p - -o /var/backups/zabbix -r 7

  # Credentials from a MySQL option file ([client] user=... password=...)
  %(prog)s -h db.example.com -c /etc/zabbix/backup.cnf -q
''',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
    )
    # -h is the database host, so help is long-option only
    parser.add_argument('--help', action='help', help='Show this help message and exit')
    parser.add_argument('-h', dest='host', metavar='HOST', help='Database host/IP (default: 127.0.0.1)')
    parser.add_argument('-P', dest='port', type=int, metavar='PORT', help='Database port (default: 3306)')
    parser.add_argument('-s', dest='socket', metavar='SOCKET', help='Database unix socket')
    parser.add_argument('-d', dest='database', metavar='DATABASE', help='Database name (default: zabbix)')
    parser.add_argument('-u', dest='user', metavar='USER', help='Database user (default: zabbix)')
    parser.add_argument('-p', dest='password', metavar='PASSWORD', help="Database password, '-' to prompt")
    parser.add_argument('-c', dest='credentials', metavar='FILE',
                        help='MySQL option file with user and password, overrides -u and -p')
    parser.add_argument('-o', dest='output_dir', metavar='DIR', help='Output directory (default: current directory)')
    parser.add_argument('-r', dest='retention', type=int, metavar='N',
                        help='Keep only the N newest backups of this host, 0 keeps all (default: 0)')
    parser.add_argument('-q', dest='quiet', action='store_true', help='Quiet mode, only report problems')
    parser.add_argument('-n', dest='no_lookup', action='store_true',
                        help='Do not reverse lookup the host name for the file name')
    parser.add_argument('--config', metavar='FILE', help='YAML configuration file')
    parser.add_argument('--verbose', '-vv', action='store_true', help='Enable debug logging')
    parser.add_argument('--version', '-V', action='version', version=f'%(prog)s {VERSION}',
                        help='Show version and exit')

    return parser.parse_args(argv)


def load_config(path: Optional[str]) -> Dict[str, Any]:
    if not path:
        return {}
    if not os.path.exists(path):
        raise ConfigurationError(f"Config file not found: {path}")
    with open(path, 'r') as f:
        config = yaml.safe_load(f) or {}
    if not isinstance(config, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return config


def build_config(args, file_config: Dict[str, Any]) -> Dict[str, Any]:
    """Merge defaults < config file < command line."""
    config = dict(DEFAULTS)
    config['database'] = dict(DEFAULTS['database'])

    file_db = file_config.get('database') or {}
    config['database'].update({k: v for k, v in file_db.items() if v is not None})
    config.update({k: v for k, v in file_config.items() if k != 'database' and v is not None})

    cli_db = {
        'host': args.host,
        'port': args.port,
        'socket': args.socket,
        'db': args.database,
        'user': args.user,
        'passwd': args.password,
        'credentials': args.credentials,
    }
    config['database'].update({k: v for k, v in cli_db.items() if v is not None})

    if args.output_dir is not None:
        config['output_dir'] = args.output_dir
    if args.retention is not None:
        config['retention'] = args.retention
    if args.quiet:
        config['quiet'] = True
    if args.no_lookup:
        config['reverse_lookup'] = False

    return config


def resolve_credentials(config: Dict[str, Any]):
    """Validate the credentials source; prompt for the password when asked to."""
    db_conf = config['database']

    try:
        config['retention'] = int(config.get('retention') or 0)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Retention count must be a number, got {config.get('retention')!r}")
    if config['retention'] < 0:
        raise ConfigurationError("Retention count must not be negative")

    if db_conf.get('credentials'):
        path = db_conf['credentials']
        if not os.path.isfile(path) or not os.access(path, os.R_OK):
            raise ConfigurationError(f"Credentials file not readable: {path}")
        return

    if db_conf.get('passwd') == '-':
        db_conf['passwd'] = getpass.getpass('Enter database password: ')
    if not db_conf.get('passwd'):
        raise ConfigurationError("No password given, use -p <password>, -p - or -c <file>")


def setup_logging(config_log_type: str, verbose: bool = False, quiet: bool = False):
    logger = logging.getLogger('zabbix_dump')
    if verbose:
        logger.setLevel(logging.DEBUG)
    elif quiet:
        logger.setLevel(logging.WARNING)
    else:
        logger.setLevel(logging.INFO)

    formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')

    if config_log_type == 'syslog':
        handler = logging.handlers.SysLogHandler(address='/dev/log')
        formatter = logging.Formatter('%(name)s: %(message)s')
    else:
        handler = logging.StreamHandler(sys.stdout)

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def main(argv: Optional[List[str]] = None):
    args = parse_args(argv)

    try:
        config = build_config(args, load_config(args.config))
        setup_logging(config.get('logging', 'console'), verbose=args.verbose, quiet=config['quiet'])
        resolve_credentials(config)

        app = ZabbixDump(config)
        app.run()

    except Exception as e:
        logging.getLogger('zabbix_dump').critical(f"Backup failed: {e}")
        print(f"Critical Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
