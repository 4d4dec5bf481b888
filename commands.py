class Cmd:
    DEVICES = 'devices'
    VERSION = 'version'
    SHELL = 'shell'
    PUSH = 'push'
    PULL = 'pull'

    # Remote shell applets
    STAT = 'stat'
    DU = 'du'
    LS = 'ls'
    MKDIR = 'mkdir'
    RM = 'rm'
    MV = 'mv'
    CP = 'cp'
    READLINK = 'readlink'
    FIND = 'find'


class CmdGroups:
    DESTRUCTIVE = frozenset({Cmd.PUSH, Cmd.PULL})
    DESTRUCTIVE_SHELL = frozenset({Cmd.RM, Cmd.MV, Cmd.CP})
    NO_SERIAL = frozenset({Cmd.DEVICES, Cmd.VERSION})

    # Tokens after which a new shell command word starts
    SHELL_SEPARATORS = frozenset({';', '&&', '||', '|', '&', 'if', 'then', 'do', 'else', 'while', '!', '{', '('})
