# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Provisioning steps for bundleprobe.

One subpackage per pipeline step: environment, toolchain, package, setup.
The dockerfile subpackage renders the same steps as a container recipe.
Each step consumes the explicit output of the previous one; nothing here
mutates the process environment.
"""
