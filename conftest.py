import os

import pytest


@pytest.fixture( autouse = True )
def isolatedConfigDir( tmp_path, monkeypatch ):
    # Never read or write the real ~/.config/slk, nor pick up a real token.
    monkeypatch.setenv( 'XDG_CONFIG_HOME', str( tmp_path / 'xdg' ) )
    for var in ( 'SLACK_TOKEN', 'SLK_CLIENT_ID', 'SLK_CLIENT_SECRET' ):
        monkeypatch.delenv( var, raising = False )
    return os.path.join( str( tmp_path / 'xdg' ), 'slk' )
