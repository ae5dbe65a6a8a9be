import configparser
import sys
from pathlib import Path


def get_base_dir():
    if getattr(sys, 'frozen', False):
        return Path(sys.executable).parent
    return Path(__file__).parent


def run_setup(base_dir=None, prompt=input):
    """Ask for database, app and SMTP settings and write db_config.ini. Returns the file path."""
    print("=" * 60)
    print("OmniInvoice - First Time Setup")
    print("=" * 60)

    config = configparser.ConfigParser()

    # Database settings
    print("\n[DATABASE CONFIGURATION]")
    db_host = prompt("Database Host [localhost]: ").strip() or 'localhost'
    db_port = prompt("Database Port [3306]: ").strip() or '3306'
    db_user = prompt("Database Username: ").strip()
    db_pass = prompt("Database Password: ").strip()
    db_name = prompt("Database Name [omniinvoice]: ").strip() or 'omniinvoice'

    config['database'] = {
        'host': db_host,
        'port': db_port,
        'username': db_user,
        'password': db_pass,
        'database': db_name
    }

    # App settings
    print("\n[APPLICATION SETTINGS]")
    debug = prompt("Enable debug mode? [no]: ").strip().lower() in ('y', 'yes', 'true', '1')

    config['app'] = {
        'secret_key': 'AUTO_GENERATED',
        'debug': str(debug)
    }

    # SMTP fallbacks (optional; the business profile overrides these)
    print("\n[EMAIL (optional, press Enter to skip)]")
    smtp_host = prompt("SMTP Host: ").strip()
    if smtp_host:
        config['smtp'] = {
            'host': smtp_host,
            'port': prompt("SMTP Port [587]: ").strip() or '587',
            'username': prompt("SMTP Username: ").strip(),
            'password': prompt("SMTP Password: ").strip(),
        }

    # Save config next to the executable/script
    base_dir = Path(base_dir) if base_dir else get_base_dir()
    config_file = base_dir / 'db_config.ini'
    with open(config_file, 'w') as f:
        config.write(f)

    print(f"\nConfiguration saved to {config_file}")
    return config_file


if __name__ == '__main__':
    run_setup()
    input("\nPress Enter to continue...")
