"""
Windows Update Scripts
PowerShell generators for hotfix/history listing, update search, download and install

Every script writes one line of compressed JSON. Scripts that can fail on the
remote side catch the exception and emit ``{"Error": "<message>"}`` instead,
so a nominally successful command still reports what went wrong.
"""

from typing import Iterable, List, Optional

from patching.comparison import normalize_kb

DOWNLOAD = 'download'
INSTALL = 'install'
ACTIONS = (DOWNLOAD, INSTALL)

HOTFIX_COMMAND = 'Get-HotFix | Select-Object HotFixID, Description, InstalledOn, InstalledBy'

RESTART_COMMAND = 'Restart-Computer -Force'

# Baseline hotfix ledger first, then Windows Update Agent history. Only
# history entries for install operations (Operation 1) that succeeded (2) or
# succeeded with errors (3) count. Later duplicates of a KB are discarded.
INSTALLED_UPDATES_SCRIPT = '''
$ErrorActionPreference = 'Stop'
try {
    $seen = @{}
    $updates = New-Object System.Collections.ArrayList
    foreach ($hf in (__HOTFIX_COMMAND__)) {
        if ([string]$hf.HotFixID -notmatch '(\\d+)') { continue }
        $key = 'KB' + $Matches[1]
        if ($seen.ContainsKey($key)) { continue }
        $seen[$key] = $true
        $installedOn = $null
        try { if ($hf.InstalledOn) { $installedOn = ([datetime]$hf.InstalledOn).ToString('yyyy-MM-dd') } } catch { }
        [void]$updates.Add([PSCustomObject]@{
            HotFixID    = $key
            Description = [string]$hf.Description
            InstalledOn = $installedOn
            InstalledBy = [string]$hf.InstalledBy
            Source      = 'hotfix'
        })
    }
    $Session = New-Object -ComObject Microsoft.Update.Session
    $Searcher = $Session.CreateUpdateSearcher()
    $total = $Searcher.GetTotalHistoryCount()
    if ($total -gt 0) {
        foreach ($entry in $Searcher.QueryHistory(0, $total)) {
            if ($entry.Operation -ne 1) { continue }
            if ($entry.ResultCode -ne 2 -and $entry.ResultCode -ne 3) { continue }
            if ([string]$entry.Title -notmatch 'KB(\\d+)') { continue }
            $key = 'KB' + $Matches[1]
            if ($seen.ContainsKey($key)) { continue }
            $seen[$key] = $true
            [void]$updates.Add([PSCustomObject]@{
                HotFixID    = $key
                Description = [string]$entry.Title
                InstalledOn = $entry.Date.ToString('yyyy-MM-dd')
                InstalledBy = $null
                Source      = 'history'
            })
        }
    }
    if ($updates.Count -eq 0) { Write-Output '[]' }
    else { Write-Output (ConvertTo-Json -InputObject @($updates) -Compress) }
} catch {
    Write-Output (ConvertTo-Json -InputObject @{ Error = $_.Exception.Message } -Compress)
}
'''.replace('__HOTFIX_COMMAND__', HOTFIX_COMMAND)

SEARCH_SCRIPT = '''
$ErrorActionPreference = 'Stop'
try {
    $Session = New-Object -ComObject Microsoft.Update.Session
    $Searcher = $Session.CreateUpdateSearcher()
    $SearchResult = $Searcher.Search("IsInstalled=0")
    $updates = @()
    foreach ($Update in $SearchResult.Updates) {
        if ($Update.EulaAccepted -eq $false) { $Update.AcceptEula() }
        $kbs = @($Update.KBArticleIDs) -join ','
        $cats = @()
        foreach ($cat in $Update.Categories) { $cats += $cat.Name }
        $sev = if ($Update.MsrcSeverity) { $Update.MsrcSeverity } else { 'Unspecified' }
        $updates += [PSCustomObject]@{
            KBArticleIDs = $kbs
            Title        = $Update.Title
            SizeBytes    = $Update.MaxDownloadSize
            Severity     = $sev
            IsDownloaded = [bool]$Update.IsDownloaded
            Categories   = ($cats -join ';')
        }
    }
    if ($updates.Count -eq 0) { Write-Output '[]' }
    else { Write-Output (ConvertTo-Json -InputObject @($updates) -Compress) }
} catch {
    Write-Output (ConvertTo-Json -InputObject @{ Error = $_.Exception.Message } -Compress)
}
'''

ACTION_SCRIPT_TEMPLATE = '''
$ErrorActionPreference = 'Stop'
try {
    $Session = New-Object -ComObject Microsoft.Update.Session
    $Searcher = $Session.CreateUpdateSearcher()
    $SearchResult = $Searcher.Search("IsInstalled=0")
    __KB_FILTER__
    $UpdateColl = New-Object -ComObject Microsoft.Update.UpdateColl
    foreach ($Update in $SearchResult.Updates) {
        if ($Update.EulaAccepted -eq $false) { $Update.AcceptEula() }
        $kbs = @($Update.KBArticleIDs)
        $match = $KBFilter.Count -eq 0
        foreach ($kb in $kbs) {
            if ($KBFilter -contains $kb) { $match = $true; break }
        }
        if ($match) { $UpdateColl.Add($Update) | Out-Null }
    }
    if ($UpdateColl.Count -eq 0) {
        Write-Output '{"ResultCode":2,"RebootRequired":false,"UpdateCount":0,"Updates":[]}'
    } else {
        $Downloader = $Session.CreateUpdateDownloader()
        $Downloader.Updates = $UpdateColl
        $DlResult = $Downloader.Download()
        __INSTALL_BLOCK__
        $FinalResult = __FINAL_RESULT__
        $results = @()
        for ($i = 0; $i -lt $UpdateColl.Count; $i++) {
            $u = $UpdateColl.Item($i)
            $r = $FinalResult.GetUpdateResult($i)
            $results += [PSCustomObject]@{
                KBArticleIDs = (@($u.KBArticleIDs) -join ',')
                Title        = $u.Title
                ResultCode   = [int]$r.ResultCode
            }
        }
        $out = @{
            ResultCode     = [int]$FinalResult.ResultCode
            RebootRequired = [bool]$FinalResult.RebootRequired
            UpdateCount    = $UpdateColl.Count
            Updates        = @($results)
        }
        Write-Output (ConvertTo-Json -InputObject $out -Compress -Depth 4)
    }
} catch {
    Write-Output (ConvertTo-Json -InputObject @{ Error = $_.Exception.Message } -Compress)
}
'''

INSTALL_BLOCK = '''$Installer = $Session.CreateUpdateInstaller()
        $Installer.Updates = $UpdateColl
        $InstResult = $Installer.Install()'''

# Component Based Servicing, Windows Update agent, pending file renames
REBOOT_CHECK_SCRIPT = '''
$cbsKey = 'HKLM:\\SOFTWARE\\Microsoft\\Windows\\CurrentVersion\\Component Based Servicing\\RebootPending'
$wuKey = 'HKLM:\\SOFTWARE\\Microsoft\\Windows\\CurrentVersion\\WindowsUpdate\\Auto Update\\RebootRequired'
$pfro = Get-ItemProperty 'HKLM:\\SYSTEM\\CurrentControlSet\\Control\\Session Manager' -Name PendingFileRenameOperations -ErrorAction SilentlyContinue
$signals = @{
    ComponentBasedServicing = [bool](Test-Path $cbsKey)
    WindowsUpdate           = [bool](Test-Path $wuKey)
    PendingFileRename       = [bool]($pfro -and $pfro.PendingFileRenameOperations)
}
Write-Output (ConvertTo-Json -InputObject $signals -Compress)
'''


def installed_updates_script() -> str:
    return INSTALLED_UPDATES_SCRIPT


def search_script() -> str:
    return SEARCH_SCRIPT


def reboot_check_script() -> str:
    return REBOOT_CHECK_SCRIPT


def bare_kb_ids(kb_ids: Optional[Iterable[str]]) -> List[str]:
    """
    Digits-only KB ids for the remote allow-list.

    Raises ValueError for an entry that is not a KB id, since dropping it
    could turn a narrow filter into an empty one that matches everything.
    """
    if not kb_ids:
        return []

    bare = []
    for raw in kb_ids:
        kb = normalize_kb(raw)
        if kb is None:
            raise ValueError(f"Not a KB identifier: {raw!r}")
        digits = kb[2:]
        if digits not in bare:
            bare.append(digits)
    return bare


def kb_filter_line(kb_ids: Optional[Iterable[str]]) -> str:
    """PowerShell assignment of the KB allow-list; empty means act on everything found"""
    bare = bare_kb_ids(kb_ids)
    if not bare:
        return '$KBFilter = @()'
    items = ', '.join(f"'{kb}'" for kb in bare)
    return f"$KBFilter = @({items})"


def action_script(action: str, kb_ids: Optional[Iterable[str]] = None) -> str:
    """Search, filter, accept EULAs, download and (for install) install"""
    if action not in ACTIONS:
        raise ValueError(f"Unknown Windows Update action: {action}")

    install = action == INSTALL
    return (
        ACTION_SCRIPT_TEMPLATE
        .replace('__KB_FILTER__', kb_filter_line(kb_ids))
        .replace('__INSTALL_BLOCK__', INSTALL_BLOCK if install else '')
        .replace('__FINAL_RESULT__', '$InstResult' if install else '$DlResult')
    )
