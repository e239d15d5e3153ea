from patchright_daemon.cli import main

main()
