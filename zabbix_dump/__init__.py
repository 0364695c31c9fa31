# -*- coding: utf-8 -*-
"""Configuration-only backup of a Zabbix MySQL database."""

# Semantic Versioning
VERSION = '0.8.0'
