from testharness.cli import main

main()
