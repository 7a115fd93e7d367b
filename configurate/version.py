"""Configurate Meta information.
   Configurate persists application configuration to disk and keeps
   selected fields in the OS keyring.
"""
__title__ = 'configurate'
__description__ = (
   'Configurate persists structured application configuration to disk '
   'and keeps secret fields in the OS keyring.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/phenobarbital/configurate'
