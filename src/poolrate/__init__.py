"""poolrate: self-reported mining pool hashrate poller."""
