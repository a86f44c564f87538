"""ftpengine: a first-principles FTP client protocol engine."""
