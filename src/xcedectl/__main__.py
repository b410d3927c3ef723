from xcedectl.cli import main

main()
