# Copyright (C) 2018 inbitcoin s.r.l.
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

""" Module to bundle ldk-mock with setuptools """

from importlib import import_module
from pathlib import Path

from setuptools import setup

L_DIR = 'ldkmock'
E_DIR = 'examples'
__version__ = getattr(import_module(L_DIR), '__version__')
PKG_NAME = getattr(import_module(L_DIR + '.settings'), 'PKG_NAME')
PIP_NAME = getattr(import_module(L_DIR + '.settings'), 'PIP_NAME')

CLI_NAME = 'ldkmock-cli'
CLI_ENTRY = '{} = {}.cli:entrypoint'.format(CLI_NAME, L_DIR)

LONG_DESC = ''
with open('README.md', encoding='utf-8') as f:
    LONG_DESC = f.read()

EXAMPLES = [path.as_posix() for path in Path(E_DIR).glob('*')]
DOC = [path.as_posix() for path in Path('.').glob('*.md')]

U_DIR = '{}.utils'.format(L_DIR)


setup(
    name=PIP_NAME,
    version=__version__,
    description='A mock LDK Lightning node exposed as MCP tools',
    long_description=LONG_DESC,
    long_description_content_type='text/markdown',
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: GNU Affero General Public License v3 '
        'or later (AGPLv3+)',
        'Natural Language :: English',
        'Operating System :: MacOS',
        'Operating System :: POSIX :: Linux',
        'Programming Language :: Python :: 3',
        'Topic :: Software Development :: Testing :: Mocking',
    ],
    keywords='ldk ln lightning network mcp mock bolt11 bip39 bip84',
    author='inbitcoin',
    author_email='lightning@inbitcoin.it',
    license='AGPLv3',
    packages=[L_DIR, U_DIR],
    include_package_data=True,
    data_files=[
        ('share/doc/{}/{}'.format(PKG_NAME, E_DIR), EXAMPLES),
        ('share/doc/{}'.format(PKG_NAME), DOC),
    ],
    python_requires='>=3.9',
    install_requires=[
        'bip_utils>=2.9.0',
        'Click>=8.0',
        'coincurve>=18.0',
        'mcp>=1.2.0,<2',
        'pylibscrypt>=2.0.0',
        'pynacl>=1.5.0',
        'qrcode>=7.0',
        'SQLAlchemy>=1.4',
    ],
    extras_require={
        'test': ['pytest', 'pytest-cov'],
    },
    entry_points={
        'console_scripts': [
            CLI_ENTRY,
            'ldkmock = {}.server:start'.format(L_DIR),
        ]
    },
)
