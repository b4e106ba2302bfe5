import argparse
import asyncio
from datetime import datetime, timedelta, timezone
import ipaddress
import os
from typing import List

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from snippetbox.app.config import Settings
from snippetbox.app.server import open_database


def _subject_alternative_names(hosts: List[str]) -> List[x509.GeneralName]:
    names: List[x509.GeneralName] = []
    for host in hosts:
        try:
            names.append(x509.IPAddress(ipaddress.ip_address(host)))
        except ValueError:
            names.append(x509.DNSName(host))
    return names


def genTlsCert(hosts: List[str], cert_file: str, key_file: str, days: int) -> None:
    key = ec.generate_private_key(ec.SECP256R1())

    name = x509.Name([x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Snippetbox Dev")])
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=days))
        .add_extension(x509.SubjectAlternativeName(_subject_alternative_names(hosts)), critical=False)
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
        .sign(key, hashes.SHA256())
    )

    for path in (cert_file, key_file):
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

    with open(cert_file, "wb") as fd:
        fd.write(cert.public_bytes(serialization.Encoding.PEM))

    with open(key_file, "wb") as fd:
        fd.write(
            key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption(),
            )
        )
    os.chmod(key_file, 0o600)

    print(f"wrote {cert_file} and {key_file} for {', '.join(hosts)}")


async def checkDb(dsn: str) -> bool:
    try:
        engine = await open_database(dsn)
    except Exception as e:
        print(f"database unreachable: {type(e).__name__}: {e}")
        return False
    await engine.dispose()
    print("database reachable")
    return True


async def realMain() -> int:
    parser = argparse.ArgumentParser(prog="snippetbox-util", description="Snippetbox utilities")

    subparsers = parser.add_subparsers(dest="command", required=True)

    gen_tls_cert = subparsers.add_parser(
        "gen-tls-cert", help="Generate a self-signed TLS certificate for development"
    )
    gen_tls_cert.add_argument(
        "--host",
        action="append",
        dest="hosts",
        help="Host name or IP address to include in the certificate (repeatable, default localhost)",
    )
    gen_tls_cert.add_argument("--cert-file", default="./tls/cert.pem", help="Certificate output path.")
    gen_tls_cert.add_argument("--key-file", default="./tls/key.pem", help="Private key output path.")
    gen_tls_cert.add_argument("--days", type=int, default=365, help="Validity period in days.")

    check_db = subparsers.add_parser("check-db", help="Check that the database is reachable")
    check_db.add_argument(
        "--dsn",
        default=None,
        help="SQLAlchemy data source name (default from DSN or the server default).",
    )

    args = vars(parser.parse_args())
    command = args.get("command", None)

    if command == "gen-tls-cert":
        hosts: List[str] = args.get("hosts") or ["localhost"]
        genTlsCert(hosts, args["cert_file"], args["key_file"], args["days"])
    elif command == "check-db":
        if not await checkDb(args["dsn"] or Settings().dsn):
            return 1
    return 0


def main() -> None:
    raise SystemExit(asyncio.run(realMain()))


if __name__ == "__main__":
    main()
