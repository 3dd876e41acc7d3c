from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("payments", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="checkoutsession",
            name="version",
            field=models.PositiveIntegerField(default=0),
        ),
    ]
