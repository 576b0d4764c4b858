# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
bundleprobe: release-bundle smoke testing.

Provisions a clean environment, installs a toolchain and a helper package,
then runs the helper's setup against a local release bundle. The whole flow
is linear and fails fast.
"""

__version__ = "0.1.0"
