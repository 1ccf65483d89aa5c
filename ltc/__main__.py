from ltc.cli import main

main()
