# -*- coding: utf-8 -*-
"""
Zabbix configuration backup.

Dumps every table of a Zabbix MySQL database with mysqldump: configuration tables with
their rows, data tables (history, trends, events, ...) with their schema only.
"""

import os
import re
import gzip
import shutil
import socket
import logging
import subprocess
from datetime import datetime
from typing import Optional, Dict, List, Any, Tuple
from contextlib import contextmanager

import pymysql

from zabbix_dump import tables
from zabbix_dump.tables import CONFIG, DATA

DUMP_TOOL = 'mysqldump'
DUMP_COMMON_FLAGS = ['--routines', '--opt', '--single-transaction', '--skip-lock-tables']
DUMP_FLAGS = {
    CONFIG: ['--extended-insert=FALSE'],
    DATA: ['--no-data'],
}
FILE_PREFIX = 'zabbix_cfg_'
TIMESTAMP_FORMAT = '%Y%m%d-%H%M'
BACKUP_NAME_SUFFIX = r'\d{8}-\d{4}\.sql\.gz'


# Custom Exceptions
class BackupError(Exception):
    pass

class ConfigurationError(BackupError):
    pass

class DatabaseError(BackupError):
    pass

class DumpError(BackupError):
    pass


def resolve_host_id(host: str) -> str:
    """Reverse lookup of the database host, used for the file name only."""
    logger = logging.getLogger('zabbix_dump')
    try:
        name = socket.gethostbyaddr(host)[0]
    except (socket.herror, socket.gaierror, OSError, UnicodeError) as e:
        logger.debug(f"Reverse lookup of {host} failed ({e}), using address")
        return host
    return name or host


def backup_prefix(host_id: str) -> str:
    return f"{FILE_PREFIX}{host_id}_"


class BackupRun:
    """State of one invocation: where the dump goes and what was dumped."""

    def __init__(self, host_id: str, timestamp: datetime, output_dir: str):
        self.host_id = host_id
        self.timestamp = timestamp
        self.output_dir = output_dir
        self.tables_processed: List[Tuple[str, str]] = []
        self.unknown_tables: List[str] = []
        self.removed_files: List[str] = []

    @property
    def prefix(self) -> str:
        return backup_prefix(self.host_id)

    @property
    def sql_path(self) -> str:
        name = f"{self.prefix}{self.timestamp.strftime(TIMESTAMP_FORMAT)}.sql"
        return os.path.join(self.output_dir, name)

    @property
    def output_path(self) -> str:
        return self.sql_path + '.gz'

    def count(self, category: str) -> int:
        return sum(1 for _, cat in self.tables_processed if cat == category)


class ZabbixDump:
    def __init__(self, config: Dict[str, Any], registry: Optional[Dict[str, str]] = None):
        self.config = config
        self.conn = None
        self.logger = logging.getLogger('zabbix_dump')
        self.registry = registry if registry is not None else tables.build_registry()

        # Unpack database config
        db_conf = self.config['database']
        self.db_host = db_conf.get('host', '127.0.0.1')
        self.db_port = int(db_conf.get('port', 3306))
        self.db_socket = db_conf.get('socket')
        self.db_user = db_conf.get('user', 'zabbix')
        self.db_password = db_conf.get('passwd')
        self.db_name = db_conf.get('db', 'zabbix')
        self.db_credentials = db_conf.get('credentials')

        self.output_dir = self.config.get('output_dir') or '.'
        self.retention = int(self.config.get('retention', 0))
        self.reverse_lookup = self.config.get('reverse_lookup', True)
        self.quiet = self.config.get('quiet', False)

    @contextmanager
    def connect_db(self):
        """Context manager for database connection."""
        try:
            connect_args = {
                'database': self.db_name,
                'port': self.db_port,
                'cursorclass': pymysql.cursors.Cursor,
            }

            if self.db_credentials:
                # [client] section of a MySQL option file, same as mysqldump reads it
                connect_args['read_default_file'] = self.db_credentials
            else:
                connect_args['user'] = self.db_user
                connect_args['password'] = self.db_password

            if self.db_socket:
                connect_args['unix_socket'] = self.db_socket
            else:
                connect_args['host'] = self.db_host

            self.logger.debug(f"Connecting to database: {self.db_name}")
            self.conn = pymysql.connect(**connect_args)

            yield self.conn

        except pymysql.MySQLError as e:
            self.logger.error(f"Database connection failed: {e}")
            raise DatabaseError(f"Failed to connect to MySQL: {e}")
        finally:
            if self.conn and self.conn.open:
                self.conn.close()
                self.logger.debug("Database connection closed")

    def get_tables(self) -> List[str]:
        """Return the sorted table names of the configured schema."""
        query = """
            SELECT `table_name`
            FROM `information_schema`.`tables`
            WHERE `table_schema` = %s
        """
        with self.connect_db():
            try:
                with self.conn.cursor() as cursor:
                    cursor.execute(query, (self.db_name,))
                    rows = cursor.fetchall()
            except pymysql.MySQLError as e:
                self.logger.error(f"SQL Error: {e} | Query: {query}")
                raise DatabaseError(f"Could not list tables of '{self.db_name}': {e}")

        if not rows:
            raise DatabaseError(f"No tables found in database '{self.db_name}'")
        return sorted(row[0] for row in rows)

    # --- Dump --- #

    def check_dump_tool(self) -> str:
        path = shutil.which(DUMP_TOOL)
        if not path:
            raise ConfigurationError(f"'{DUMP_TOOL}' not found in PATH")
        return path

    def build_dump_command(self, table: str, category: str) -> List[str]:
        cmd = [DUMP_TOOL]
        # --defaults-extra-file is only honoured as the very first option
        if self.db_credentials:
            cmd.append(f"--defaults-extra-file={self.db_credentials}")
        cmd += DUMP_COMMON_FLAGS + DUMP_FLAGS[category]

        if self.db_socket:
            cmd.append(f"--socket={self.db_socket}")
        else:
            cmd += [f"--host={self.db_host}", f"--port={self.db_port}"]
        if not self.db_credentials:
            cmd.append(f"--user={self.db_user}")

        cmd += [self.db_name, table]
        return cmd

    def dump_env(self) -> Dict[str, str]:
        env = dict(os.environ)
        # Keep the password out of the process list
        if not self.db_credentials and self.db_password:
            env['MYSQL_PWD'] = self.db_password
        return env

    def dump_table(self, table: str, category: str, fd):
        cmd = self.build_dump_command(table, category)
        self.logger.debug(f"Running: {' '.join(cmd)}")
        try:
            subprocess.run(cmd, stdout=fd, stderr=subprocess.PIPE, env=self.dump_env(), check=True)
        except subprocess.CalledProcessError as e:
            stderr = e.stderr.decode(errors='replace').strip() if e.stderr else ''
            raise DumpError(f"Dump of table '{table}' failed (exit {e.returncode}): {stderr}")
        except OSError as e:
            raise DumpError(f"Could not run {DUMP_TOOL} for table '{table}': {e}")

    def dump_tables(self, table_names: List[str], run: BackupRun):
        """Dump all tables into one file, in the given order. Any failure aborts."""
        total = len(table_names)
        try:
            with open(run.sql_path, 'wb') as fd:
                for i, table in enumerate(table_names, 1):
                    category = tables.classify(table, self.registry)
                    if not tables.is_known(table, self.registry):
                        run.unknown_tables.append(table)

                    if not self.quiet:
                        mode = 'schema only' if category == DATA else 'full'
                        self.logger.info(f"{i * 100 // total:3d}% {table} ({mode})")

                    self.dump_table(table, category, fd)
                    fd.flush()
                    run.tables_processed.append((table, category))
        except DumpError:
            self._discard(run.sql_path)
            raise
        except OSError as e:
            self._discard(run.sql_path)
            raise BackupError(f"Could not write {run.sql_path}: {e}")

    def _discard(self, path: str):
        try:
            os.remove(path)
            self.logger.warning(f"Removed incomplete backup {path}")
        except FileNotFoundError:
            pass

    # --- Post-processing --- #

    def compress(self, path: str) -> str:
        """gzip the file next to itself and remove the original."""
        target = path + '.gz'
        try:
            with open(path, 'rb') as src, gzip.open(target, 'wb') as dst:
                shutil.copyfileobj(src, dst)
            os.remove(path)
        except OSError as e:
            self._discard(target)
            raise BackupError(f"Compression of {path} failed: {e}")
        return target

    def rotate(self, directory: str, prefix: str, keep: int) -> List[str]:
        """
        Delete all but the `keep` most recent backups named `<prefix><timestamp>.sql.gz`.
        Other files, including backups of hosts whose name extends `prefix`, are left alone.
        """
        if keep <= 0:
            return []

        pattern = re.compile(rf'^{re.escape(prefix)}{BACKUP_NAME_SUFFIX}$')
        try:
            candidates = [
                os.path.join(directory, name)
                for name in os.listdir(directory)
                if pattern.match(name) and os.path.isfile(os.path.join(directory, name))
            ]
            candidates.sort(key=os.path.getmtime, reverse=True)
        except OSError as e:
            raise BackupError(f"Could not list backups in {directory}: {e}")

        removed = []
        for path in candidates[keep:]:
            try:
                os.remove(path)
            except OSError as e:
                raise BackupError(f"Could not remove old backup {path}: {e}")
            self.logger.info(f"Removed old backup {path}")
            removed.append(path)
        return removed

    # --- Core Logic --- #

    def run(self) -> BackupRun:
        """Main execution: check, enumerate, dump, compress, rotate."""
        tables.check_registry(self.registry)
        self.check_dump_tool()

        table_names = self.get_tables()

        host_id = self.db_host
        if self.reverse_lookup:
            host_id = resolve_host_id(self.db_host)

        try:
            os.makedirs(self.output_dir, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(f"Could not create output directory {self.output_dir}: {e}")

        run = BackupRun(host_id, datetime.now(), self.output_dir)
        self.logger.info(f"Starting backup of {len(table_names)} tables from {self.db_name}@{host_id}")

        self.dump_tables(table_names, run)
        self.compress(run.sql_path)
        run.removed_files = self.rotate(self.output_dir, run.prefix, self.retention)

        self.report(run)
        return run

    def report(self, run: BackupRun):
        if run.unknown_tables:
            self.logger.warning(
                "Tables unknown to this version, dumped in full: " + ', '.join(run.unknown_tables)
            )
        if self.quiet:
            return
        size = os.path.getsize(run.output_path)
        self.logger.info(
            f"Backup completed: {run.count(CONFIG)} tables with data, "
            f"{run.count(DATA)} schema only"
        )
        self.logger.info(f"Backup file: {run.output_path} ({size} bytes)")
