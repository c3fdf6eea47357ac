#!/usr/bin/env python3
"""
Indaleko Transit entry point.

This script encrypts or decrypts single values through the configured
transit engine, or demonstrates an encrypted model end to end, based on
command line arguments.
"""

import argparse
import os
import sys

from indaleko_transit.config import TransitConfig
from indaleko_transit.db import MemoryRecordStore
from indaleko_transit.encryption import get_transit_client
from indaleko_transit.errors import TransitError
from indaleko_transit.models import EncryptedField, EncryptedModel


def define_patient_model() -> type[EncryptedModel]:
    """
    Define the example patient model.

    Default key names include the configured application name, so the model
    is defined after configuration is loaded.
    """

    class Patient(EncryptedModel):
        """Example patient record for demonstration."""

        name: str
        ssn_encrypted: str | None = None
        notes_encrypted: str | None = None
        blood_type_encrypted: str | None = None

        ssn = EncryptedField(convergent=True)
        notes = EncryptedField(serializer="json")
        blood_type = EncryptedField(
            encode=lambda raw: raw and raw.upper(),
            decode=lambda raw: raw and raw.lower(),
        )

    return Patient



def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(description="Indaleko Transit")

    parser.add_argument(
        "--config",
        help="Path to configuration file"
    )

    parser.add_argument(
        "--mode",
        choices=["DEV", "PROD"],
        help="Override operation mode (DEV or PROD)"
    )

    parser.add_argument(
        "--secrets",
        help="Path to a secrets file (default: .secrets/transit.yaml next to this script)"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    encrypt_parser = subparsers.add_parser("encrypt", help="Encrypt a value")
    encrypt_parser.add_argument("path", help="Transit mount path")
    encrypt_parser.add_argument("key", help="Transit key name")
    encrypt_parser.add_argument("value", help="Plaintext to encrypt")
    encrypt_parser.add_argument("--convergent", action="store_true", help="Use convergent encryption")

    decrypt_parser = subparsers.add_parser("decrypt", help="Decrypt a value")
    decrypt_parser.add_argument("path", help="Transit mount path")
    decrypt_parser.add_argument("key", help="Transit key name")
    decrypt_parser.add_argument("ciphertext", help="Ciphertext to decrypt")
    decrypt_parser.add_argument("--convergent", action="store_true", help="Value was encrypted convergently")

    subparsers.add_parser("demo", help="Save and reload an encrypted record")

    return parser.parse_args(argv)


def run_demo() -> None:
    """Run a demonstration of an encrypted model."""
    print("Running Indaleko Transit demo...", file=sys.stderr)

    Patient = define_patient_model()

    store = MemoryRecordStore()

    patient = Patient(name="Jane Doe", ssn="123-45-6789", notes={"allergies": ["penicillin"]})
    patient.blood_type = "ab+"
    key = patient.save(store)

    print(f"Saved patient {key}", file=sys.stderr)
    print(f"Stored document: {store.get(Patient.table_name(), key)}", file=sys.stderr)

    loaded = Patient.get(key, store)
    print(f"Decrypted ssn: {loaded.ssn}", file=sys.stderr)
    print(f"Decrypted notes: {loaded.notes}", file=sys.stderr)
    print(f"Decrypted blood type: {loaded.blood_type}", file=sys.stderr)

    matches = Patient.find_by_vault_attribute("ssn", "123-45-6789", store)
    print(f"Patients found by ssn: {len(matches)}", file=sys.stderr)

    print("Demo completed successfully!", file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    """Main entry point for Indaleko Transit."""
    args = parse_args(argv)

    # Set environment variables from command line
    if args.mode:
        os.environ["INDALEKO_MODE"] = args.mode

    try:
        # Initialize configuration
        TransitConfig.initialize(args.config)

        # Look for secrets file in standard location
        secrets_file = args.secrets or os.path.join(
            os.path.dirname(os.path.abspath(__file__)), ".secrets", "transit.yaml"
        )
        if args.secrets or os.path.exists(secrets_file):
            TransitConfig.load_from_secrets_file(secrets_file)

        # Print startup information
        mode = TransitConfig.get("mode")
        print(f"Indaleko Transit - {mode} mode", file=sys.stderr)
        print(f"Vault enabled: {TransitConfig.is_vault_enabled()}", file=sys.stderr)

        if args.command == "demo":
            run_demo()
            return 0

        client = get_transit_client()
        try:
            if args.command == "encrypt":
                print(client.encrypt(args.path, args.key, args.value, args.convergent))
            else:
                print(client.decrypt(args.path, args.key, args.ciphertext, args.convergent))
        finally:
            client.close()
    except TransitError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
