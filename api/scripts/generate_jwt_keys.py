#!/usr/bin/env python3
# SPDX-License-Identifier: Apache-2.0

"""
Print a development RSA key pair as environment variable assignments.

The API only needs JWT_PUBLIC_KEY; the private key is for signing local
test tokens.
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.auth import generate_key_pair


def as_env_value(pem: str) -> str:
    return pem.replace("\n", "\\n")


if __name__ == "__main__":
    private_pem, public_pem = generate_key_pair()

    print(f'JWT_PRIVATE_KEY="{as_env_value(private_pem)}"')
    print(f'JWT_PUBLIC_KEY="{as_env_value(public_pem)}"')
