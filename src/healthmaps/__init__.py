# -*- coding: utf-8 -*-
"""
healthmaps

Interactive and static maps of NHS health boards, GP practices and
dispensers built from open data tables and boundary files.
"""

__version__ = '0.1.0'
