"""Sealed Vault Meta information.
   Sealed Vault keeps credential records encrypted on the client,
   the server only ever stores opaque ciphertext.
"""
__title__ = 'sealed_vault'
__description__ = (
   'Sealed Vault keeps credential records encrypted on the client, '
   'the server only ever stores opaque ciphertext.'
)
__version__ = '0.1.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/phenobarbital/sealed-vault'
