from spo_retention.cli import main

if __name__ == "__main__":
    main()
