# -*- coding: utf-8 -*-
"""
Zabbix table registry.

Every table known from the Zabbix schema (1.3.1 - 2.4.0) is listed here with its
backup category. CONFIG tables are dumped with their rows, DATA tables only with
their schema. The version range of each table is informational.
"""

from typing import Dict, Iterable, NamedTuple

CONFIG = 'CONFIG'
DATA = 'DATA'

# Fewer DATA tables than this means the list below got truncated
MIN_DATA_TABLES = 5


class RegistryError(Exception):
    pass


class TableEntry(NamedTuple):
    name: str
    category: str
    since: str
    until: str


def _t(name: str, since: str, until: str, category: str = CONFIG) -> TableEntry:
    return TableEntry(name, category, since, until)


TABLES = (
    _t('acknowledges', '1.3.1', '2.4.0', DATA),
    _t('actions', '1.3.1', '2.4.0'),
    _t('alerts', '1.3.1', '2.4.0', DATA),
    _t('application_template', '2.1.0', '2.4.0'),
    _t('applications', '1.3.1', '2.4.0'),
    _t('auditlog', '1.3.1', '2.4.0', DATA),
    _t('auditlog_details', '1.7', '2.4.0', DATA),
    _t('autoreg', '1.3.1', '1.3.4'),
    _t('autoreg_host', '1.7', '2.4.0'),
    _t('conditions', '1.3.1', '2.4.0'),
    _t('config', '1.3.1', '2.4.0'),
    _t('dbversion', '2.1.0', '2.4.0'),
    _t('dchecks', '1.3.4', '2.4.0'),
    _t('dhosts', '1.3.4', '2.4.0'),
    _t('drules', '1.3.4', '2.4.0'),
    _t('dservices', '1.3.4', '2.4.0'),
    _t('escalations', '1.5.3', '2.4.0'),
    _t('events', '1.3.1', '2.4.0', DATA),
    _t('expressions', '1.7', '2.4.0'),
    _t('functions', '1.3.1', '2.4.0'),
    _t('globalmacro', '1.7', '2.4.0'),
    _t('globalvars', '1.9.6', '2.4.0'),
    _t('graph_discovery', '1.9.0', '2.4.0'),
    _t('graph_theme', '1.7', '2.4.0'),
    _t('graphs', '1.3.1', '2.4.0'),
    _t('graphs_items', '1.3.1', '2.4.0'),
    _t('group_discovery', '2.1.4', '2.4.0'),
    _t('group_prototype', '2.1.4', '2.4.0'),
    _t('groups', '1.3.1', '2.4.0'),
    _t('help_items', '1.3.1', '2.1.8'),
    _t('history', '1.3.1', '2.4.0', DATA),
    _t('history_log', '1.3.1', '2.4.0', DATA),
    _t('history_str', '1.3.1', '2.4.0', DATA),
    _t('history_str_sync', '1.3.1', '2.2.9', DATA),
    _t('history_sync', '1.3.1', '2.2.9', DATA),
    _t('history_text', '1.3.1', '2.4.0', DATA),
    _t('history_uint', '1.3.1', '2.4.0', DATA),
    _t('history_uint_sync', '1.3.1', '2.2.9', DATA),
    _t('host_discovery', '2.1.4', '2.4.0'),
    _t('host_inventory', '1.9.6', '2.4.0'),
    _t('hostmacro', '1.7', '2.4.0'),
    _t('hosts', '1.3.1', '2.4.0'),
    _t('hosts_groups', '1.3.1', '2.4.0'),
    _t('hosts_profiles', '1.3.1', '1.9.5'),
    _t('hosts_profiles_ext', '1.6', '1.9.5'),
    _t('hosts_templates', '1.3.1', '2.4.0'),
    _t('housekeeper', '1.3.1', '2.4.0'),
    _t('httpstep', '1.3.3', '2.4.0'),
    _t('httpstepitem', '1.3.3', '2.4.0'),
    _t('httptest', '1.3.3', '2.4.0'),
    _t('httptestitem', '1.3.3', '2.4.0'),
    _t('icon_map', '1.9.6', '2.4.0'),
    _t('icon_mapping', '1.9.6', '2.4.0'),
    _t('ids', '1.3.3', '2.4.0'),
    _t('images', '1.3.1', '2.4.0'),
    _t('interface', '1.9.1', '2.4.0'),
    _t('interface_discovery', '2.1.4', '2.4.0'),
    _t('item_condition', '2.3.0', '2.4.0'),
    _t('item_discovery', '1.9.0', '2.4.0'),
    _t('items', '1.3.1', '2.4.0'),
    _t('items_applications', '1.3.1', '2.4.0'),
    _t('maintenances', '1.7', '2.4.0'),
    _t('maintenances_groups', '1.7', '2.4.0'),
    _t('maintenances_hosts', '1.7', '2.4.0'),
    _t('maintenances_windows', '1.7', '2.4.0'),
    _t('mappings', '1.3.1', '2.4.0'),
    _t('media', '1.3.1', '2.4.0'),
    _t('media_type', '1.3.1', '2.4.0'),
    _t('node_cksum', '1.3.1', '2.2.9', DATA),
    _t('nodes', '1.3.1', '2.2.9'),
    _t('opcommand', '1.9.4', '2.4.0'),
    _t('opcommand_grp', '1.9.2', '2.4.0'),
    _t('opcommand_hst', '1.9.2', '2.4.0'),
    _t('opconditions', '1.5.3', '2.4.0'),
    _t('operations', '1.3.4', '2.4.0'),
    _t('opgroup', '1.9.2', '2.4.0'),
    _t('opmediatypes', '1.7', '1.8.22'),
    _t('opmessage', '1.9.2', '2.4.0'),
    _t('opmessage_grp', '1.9.2', '2.4.0'),
    _t('opmessage_usr', '1.9.2', '2.4.0'),
    _t('optemplate', '1.9.2', '2.4.0'),
    _t('profiles', '1.3.1', '2.4.0'),
    _t('proxy_autoreg_host', '1.7', '2.4.0', DATA),
    _t('proxy_dhistory', '1.7', '2.4.0', DATA),
    _t('proxy_history', '1.7', '2.4.0', DATA),
    _t('regexps', '1.7', '2.4.0'),
    _t('rights', '1.3.1', '2.4.0'),
    _t('screen_user', '2.3.0', '2.4.0'),
    _t('screen_usrgrp', '2.3.0', '2.4.0'),
    _t('screens', '1.3.1', '2.4.0'),
    _t('screens_items', '1.3.1', '2.4.0'),
    _t('scripts', '1.5', '2.4.0'),
    _t('service_alarms', '1.3.1', '2.4.0', DATA),
    _t('services', '1.3.1', '2.4.0'),
    _t('services_links', '1.3.1', '2.4.0'),
    _t('services_times', '1.3.1', '2.4.0'),
    _t('sessions', '1.3.1', '2.4.0'),
    _t('slides', '1.3.4', '2.4.0'),
    _t('slideshow_user', '2.3.0', '2.4.0'),
    _t('slideshow_usrgrp', '2.3.0', '2.4.0'),
    _t('slideshows', '1.3.4', '2.4.0'),
    _t('sysmap_element_url', '1.9.0', '2.4.0'),
    _t('sysmap_url', '1.9.0', '2.4.0'),
    _t('sysmap_user', '2.3.0', '2.4.0'),
    _t('sysmap_usrgrp', '2.3.0', '2.4.0'),
    _t('sysmaps', '1.3.1', '2.4.0'),
    _t('sysmaps_elements', '1.3.1', '2.4.0'),
    _t('sysmaps_link_triggers', '1.5', '2.4.0'),
    _t('sysmaps_links', '1.3.1', '2.4.0'),
    _t('timeperiods', '1.7', '2.4.0'),
    _t('trends', '1.3.1', '2.4.0', DATA),
    _t('trends_uint', '1.5', '2.4.0', DATA),
    _t('trigger_depends', '1.3.1', '2.4.0'),
    _t('trigger_discovery', '1.9.0', '2.4.0'),
    _t('triggers', '1.3.1', '2.4.0'),
    _t('user_history', '1.7', '2.4.0'),
    _t('users', '1.3.1', '2.4.0'),
    _t('users_groups', '1.3.1', '2.4.0'),
    _t('usrgrp', '1.3.1', '2.4.0'),
    _t('valuemaps', '1.3.1', '2.4.0'),
)


def build_registry(entries: Iterable[TableEntry] = TABLES) -> Dict[str, str]:
    """Map table name -> category. Duplicate names are an error."""
    registry = {}
    for entry in entries:
        if entry.category not in (CONFIG, DATA):
            raise RegistryError(f"Table '{entry.name}' has unknown category '{entry.category}'")
        if entry.name in registry:
            raise RegistryError(f"Table '{entry.name}' is listed more than once")
        registry[entry.name] = entry.category
    return registry


def check_registry(registry: Dict[str, str]):
    data_count = sum(1 for category in registry.values() if category == DATA)
    if data_count < MIN_DATA_TABLES:
        raise RegistryError(
            f"Table registry lists only {data_count} data tables (at least {MIN_DATA_TABLES} expected). "
            "Refusing to run, the list is probably truncated."
        )


def classify(table: str, registry: Dict[str, str]) -> str:
    # Unknown tables are most likely new config tables: back them up in full
    return registry.get(table, CONFIG)


def is_known(table: str, registry: Dict[str, str]) -> bool:
    return table in registry
