"""Tembo Auth Meta information.
   Tembo Auth keeps per-user Tembo API keys encrypted at rest
   and re-validates them before every use.
"""
__title__ = 'tembo_auth'
__description__ = (
   'Encrypted per-user credential store and authentication '
   'orchestration for the Tembo chat bot.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2025 Tembo Bot Contributors'
__author__ = 'Tembo Bot Contributors'
__license__ = 'Apache-2.0'
