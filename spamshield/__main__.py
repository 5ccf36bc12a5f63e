from spamshield.main import main

main()
