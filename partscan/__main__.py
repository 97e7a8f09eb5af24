from partscan.cli import main

main()
