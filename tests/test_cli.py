import subprocess, sys


def test_cli_version():
    result = subprocess.run([sys.executable, '-m', 'sync_latency', '--version'], capture_output=True, text=True)
    assert result.returncode == 0
    assert 'sync-latency' in result.stdout


def test_cli_print_script_dropbox(monkeypatch):
    monkeypatch.setenv('SYNC_PROVIDER', 'dropbox')
    cp = subprocess.run([sys.executable, '-m', 'sync_latency', '--print-script', 'https://example.ngrok.io/'],
                        capture_output=True, text=True)
    assert cp.returncode == 0
    assert "request.open('GET', `https://example.ngrok.io/${path}`)" in cp.stdout
    assert 'brws-file-row' in cp.stdout


def test_cli_print_script_google_drive():
    cp = subprocess.run([sys.executable, '-m', 'sync_latency', '--provider', 'google_drive',
                         '--print-script', 'https://example.ngrok.io'], capture_output=True, text=True)
    assert cp.returncode == 0
    assert 'data-is-doc-name' in cp.stdout


def test_cli_bad_config(monkeypatch):
    monkeypatch.setenv('TEST_ITERATIONS', 'lots')
    cp = subprocess.run([sys.executable, '-m', 'sync_latency', '--print-script', 'https://x'], capture_output=True, text=True)
    assert cp.returncode == 2
    assert 'Invalid TEST_ITERATIONS' in cp.stderr
