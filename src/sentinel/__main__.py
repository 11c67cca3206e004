from src.sentinel.cli import main

main()
