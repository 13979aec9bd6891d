from mycelium.cli import main

main()
