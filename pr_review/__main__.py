from pr_review.cli.main import main

main()
