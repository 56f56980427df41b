# SPDX-License-Identifier: Apache-2.0
"""Command-line client for the DeepL translation API."""

__version__ = "0.1.0"
