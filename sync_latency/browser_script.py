"""Console scripts the operator pastes into the provider's web UI.

Each script remembers the files already listed, polls the listing every
100ms, and calls ``/sync?fileName=..&ts=..`` for every new file, ``/empty``
when the listing goes from non-empty to empty and ``/ready`` once attached.
"""

from __future__ import annotations

URL_PLACEHOLDER = "__CALLBACK_URL__"

_COMMON_TAIL = """
    let timer = setInterval(() => {
      let files = listFiles();
      files.forEach((element) => {
        let fileName = fileNameOf(element);
        if (fileName) {
          if (!filesByName.includes(fileName)) {
            getFn(`sync?fileName=${encodeURIComponent(fileName)}&ts=${new Date().getTime()}`);
            filesByName.push(fileName);
            console.log(`Detected new file: '${fileName}' at ${new Date()}`);
          }
        }
      });
      if ((files.length === 0) && (filesByName.length !== 0)) {
        filesByName = [];
        getFn('empty');
      }
    }, 100);

    function stopPerfTimer() {
      if (timer) { clearInterval(timer); }
      console.log('Stopped performance timer.');
    };
    if (document.stopPerfTimer) { document.stopPerfTimer(); }
    document.stopPerfTimer = stopPerfTimer;

    getFn('ready');
    console.log('Now monitoring files and their create timestamps. Run `document.stopPerfTimer()` when done');
  })();
"""

_COMMON_HEAD = """
    let filesByName = [];

    let getFn = (path) => {
      let request = new XMLHttpRequest();
      request.open('GET', `__CALLBACK_URL__/${path}`);
      request.send();
    };

    if (!folder()) { throw('Could not find listbox DOM element. Did you run this script before the page rendered?'); }

    /* Ignore existing files, only monitor new ones */
    listFiles().forEach((element) => { filesByName.push(fileNameOf(element)); });
"""

DROPBOX_SCRIPT = """  (function() {
    let folder = () => { return document.querySelector('div.brws-files-view'); };
    let filesSelector = 'table.mc-table.brws-files-view-list tr.brws-file-row';
    let listFiles = () => { return folder().querySelectorAll(filesSelector); };
    let fileNameOf = (element) => { return element.getAttribute('data-filename'); };
""" + _COMMON_HEAD + _COMMON_TAIL

GOOGLE_DRIVE_SCRIPT = """  (function() {
    let visibleRootFolder = () => { return Array.from(document.querySelectorAll('div[role=main]')).find((elem) => { return elem.style.display !== 'none'; }); };
    let folder = () => { return visibleRootFolder().querySelector('div[role="presentation"] div[role="listbox"]'); };
    let filesSelector = 'div[data-target=doc] > div > div > div > div > div[aria-label] span[data-is-doc-name=true]';
    let listFiles = () => { return folder().querySelectorAll(filesSelector); };
    let fileNameOf = (element) => { return element.innerHTML; };
""" + _COMMON_HEAD + _COMMON_TAIL

SCRIPTS = {
    "dropbox": DROPBOX_SCRIPT,
    "google_drive": GOOGLE_DRIVE_SCRIPT,
}


def render(provider: str, callback_url: str) -> str:
    try:
        template = SCRIPTS[provider]
    except KeyError:
        raise ValueError(f"No browser script for provider '{provider}'") from None
    return template.replace(URL_PLACEHOLDER, callback_url.rstrip("/"))
