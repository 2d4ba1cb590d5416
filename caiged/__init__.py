# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""caiged - Per-project Docker containers hosting an OpenCode agent server."""

__version__ = "0.4.0"
