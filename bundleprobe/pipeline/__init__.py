# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Pipeline orchestration for bundleprobe.

Init -> EnvironmentReady -> ToolchainReady -> PackageInstalled -> SetupComplete,
with any step failure going straight to Failed. No retries, no rollback.
"""
